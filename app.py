import os
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

from job_storage import PersistentDocumentStorage
from proofread.api import proofread_bp
from proofread.documents import DocumentService
from proofread.logging_utils import setup_logging
from proofread.storage import LocalFileStorage

load_dotenv()

# Configuration
UPLOAD_FOLDER = os.getenv('UPLOAD_FOLDER', 'uploads')
MAX_CONTENT_LENGTH = int(os.getenv('MAX_CONTENT_LENGTH', str(50 * 1024 * 1024)))  # 50MB


def create_app(
    store: Optional[PersistentDocumentStorage] = None,
    file_storage: Optional[LocalFileStorage] = None,
) -> Flask:
    """Build the Flask app; collaborators default to Redis and the upload folder."""
    app = Flask(__name__)
    app.secret_key = os.getenv('SECRET_KEY', 'your-secret-key-here')
    app.config['UPLOAD_FOLDER'] = UPLOAD_FOLDER
    app.config['MAX_CONTENT_LENGTH'] = MAX_CONTENT_LENGTH

    store = store or PersistentDocumentStorage(prefix='proof')
    file_storage = file_storage or LocalFileStorage(app.config['UPLOAD_FOLDER'])
    app.extensions['proofread'] = DocumentService(store, file_storage)

    app.register_blueprint(proofread_bp)
    return app


if __name__ == '__main__':
    setup_logging()
    port = int(os.getenv('PORT', '5000'))
    create_app().run(debug=os.getenv('FLASK_DEBUG') == '1', host='0.0.0.0', port=port)
