# Default configuration. The web host loads this module with
# app.config.from_object() and then applies HZ_* environment overrides.

# Bytes read per chunk while scanning a source
CHUNK_SIZE = 4096

# Decoded bits between two progress reports
PROGRESS_STEP_BITS = 1 << 16

FILE_EXTENSION = ".hz"

# Upper bound for a JSON request body (base64 inflates by ~4/3)
MAX_CONTENT_LENGTH = 64 * 1024 * 1024

HOST = "0.0.0.0"
PORT = 5000
DEBUG = False
