# app.py
import base64, binascii, io, os
from flask import Flask, render_template, request, jsonify

import settings
from errors import HzError, MalformedContainer, UndecodableBitstream
from pipeline import CompressionPipeline, DecompressionPipeline

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def create_app(config=None):
    app = Flask(
        __name__,
        static_url_path='/static',
        template_folder=os.path.join(BASE_DIR, "templates"),
        static_folder=os.path.join(BASE_DIR, "static")
    )
    app.config.from_object(settings)
    app.config.from_prefixed_env("HZ")
    if config:
        app.config.update(config)

    register_routes(app)
    return app


# Decode the uploaded file; raises ValueError with a user-facing message
def read_upload(data) -> bytes:
    if not isinstance(data, dict) or 'file' not in data:
        raise ValueError("Missing 'file' field.")
    try:
        return base64.b64decode(data['file'], validate=True)
    except (binascii.Error, TypeError) as e:
        raise ValueError(f"'file' is not valid base64: {e}")


def failure_status(error: HzError) -> int:
    if isinstance(error, (MalformedContainer, UndecodableBitstream)):
        return 422
    return 400


def register_routes(app):

    # Root -> render UI
    @app.route('/')
    def index():
        return render_template('index.html', extension=app.config['FILE_EXTENSION'])

    @app.route('/compress', methods=['POST'])
    def compress():
        data = request.get_json(silent=True)
        try:
            file_bytes = read_upload(data)
        except ValueError as e:
            return jsonify({'error': str(e)}), 400

        name = data.get('filename') or 'compressed'
        if not isinstance(name, str):
            return jsonify({'error': "'filename' must be a string."}), 400
        log = []
        pipeline = CompressionPipeline(
            io.BytesIO(file_bytes),
            total=len(file_bytes),
            on_status=log.append,
            chunk_size=app.config['CHUNK_SIZE'],
        )
        try:
            packed = pipeline.run()
        except Exception as e:
            app.logger.exception("compression crashed")
            return jsonify({'error': f'Compression error: {e}'}), 500

        if pipeline.error is not None:
            app.logger.warning("compression failed: %s", pipeline.error)
            return jsonify({'error': str(pipeline.error), 'log': "\n".join(log)}), failure_status(pipeline.error)

        app.logger.info("compressed %d bytes into %d", len(file_bytes), len(packed))
        return jsonify({
            'compressed_data': base64.b64encode(packed).decode(),
            'filename': os.path.splitext(name)[0] + app.config['FILE_EXTENSION'],
            'entries': len(pipeline.codes),
            'original_size': len(file_bytes),
            'compressed_size': len(packed),
            'log': "\n".join(log)
        })

    @app.route('/decompress', methods=['POST'])
    def decompress():
        data = request.get_json(silent=True)
        try:
            raw = read_upload(data)
        except ValueError as e:
            return jsonify({'error': str(e)}), 400

        log = []
        pipeline = DecompressionPipeline(
            io.BytesIO(raw),
            legacy=data.get('legacy') is True,
            on_status=log.append,
            chunk_size=app.config['CHUNK_SIZE'],
            progress_step=app.config['PROGRESS_STEP_BITS'],
        )
        try:
            original = pipeline.run()
        except Exception as e:
            app.logger.exception("decompression crashed")
            return jsonify({'error': f'Decompression error: {e}'}), 500

        if pipeline.error is not None:
            app.logger.warning("decompression failed: %s", pipeline.error)
            return jsonify({'error': str(pipeline.error), 'log': "\n".join(log)}), failure_status(pipeline.error)

        return jsonify({
            'original_file': base64.b64encode(original).decode(),
            'original_size': len(original),
            'log': "\n".join(log)
        })

    # Clear log endpoint
    @app.route('/clear_log', methods=['POST'])
    def clear_log():
        return jsonify({"log": ""})


app = create_app()

# Run app
if __name__ == "__main__":
    app.run(host=app.config['HOST'], port=app.config['PORT'], debug=app.config['DEBUG'])
