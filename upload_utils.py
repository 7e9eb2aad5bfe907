import os
from datetime import datetime

from flask import current_app
from werkzeug.utils import secure_filename

from errors import ValidationError


def allowed_file(filename):
    extension = filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
    return extension in current_app.config['ALLOWED_IMAGE_EXTENSIONS']


def save_uploaded_file(file, subfolder=''):
    """Store an uploaded image under UPLOAD_FOLDER and return its public ``/uploads/...`` path."""
    if not file or not file.filename:
        return None
    if not allowed_file(file.filename):
        raise ValidationError('Only image files are allowed!')

    filename = f"{datetime.now().strftime('%Y%m%d%H%M%S%f')}_{secure_filename(file.filename)}"
    folder = os.path.join(current_app.config['UPLOAD_FOLDER'], subfolder)
    os.makedirs(folder, exist_ok=True)
    file.save(os.path.join(folder, filename))
    return '/uploads/' + '/'.join(part for part in (subfolder, filename) if part)


def remove_uploaded_file(url):
    if not url or '/uploads/' not in url:
        return
    relative = url.split('/uploads/', 1)[1]
    path = os.path.join(current_app.config['UPLOAD_FOLDER'], relative)
    if os.path.exists(path):
        os.remove(path)
