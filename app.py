import logging

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix

from streamrelay.config import RelayConfig
from streamrelay.errors import RelayError
from streamrelay.relay import StreamRelay
from streamrelay.youtube import YtDlpResolver

logger = logging.getLogger(__name__)


def create_app(config=None, resolver=None):
    """Build the relay app. ``resolver`` defaults to the yt-dlp one."""
    config = config or RelayConfig()
    resolver = resolver or YtDlpResolver.from_config(config)

    app = Flask(__name__)
    if config.trust_proxy:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)

    CORS(app, resources={r"/*": {"origins": config.cors_origins}}, methods=list(config.cors_methods),
         send_wildcard=config.cors_origins == "*")

    relay = StreamRelay(resolver, high_water_mark=config.high_water_mark)
    app.extensions['stream_relay'] = relay

    @app.after_request
    def preflight_status(response):
        if request.method == 'OPTIONS' and response.status_code == 200:
            response.status_code = config.preflight_status
        return response

    @app.route('/stream/<video_id>', methods=['GET'])
    def stream_video(video_id):
        logger.info(f"Received request for video ID: {video_id}")
        try:
            _, body = relay.start(video_id)
        except RelayError as e:
            return jsonify({'error': e.message}), e.status_code
        except Exception as e:
            logger.error(f"An unexpected error occurred: {e}")
            return jsonify({'error': f'Server error: {e}'}), 500

        # No Content-Disposition: the browser should play it, not download it
        return Response(body, mimetype='video/mp4', direct_passthrough=True)

    @app.route('/')
    def home():
        return jsonify({
            'service': 'YouTube stream relay',
            'status': 'running',
            'tips': 'Use /stream/VIDEO_ID to play a video'
        })

    @app.route('/api/health', methods=['GET'])
    def health_check():
        return jsonify({"status": "ok"}), 200

    return app
