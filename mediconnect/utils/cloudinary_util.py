# /mediconnect/utils/cloudinary_util.py
import cloudinary
import cloudinary.uploader
import cloudinary.utils
import os
from flask import current_app


class CloudinaryManager:
    """Utility class for handling Cloudinary operations.

    A bucket maps to a Cloudinary folder and a storage key to the public id
    inside it, so `test_images/alice_1700000000000.png` is stored as public id
    `test_images/alice_1700000000000` with format `png`.
    """

    def __init__(self, app=None):
        if app:
            self.init_app(app)

    def init_app(self, app):
        """Initialize Cloudinary with app config."""
        cloudinary.config(
            cloud_name=app.config.get('CLOUDINARY_CLOUD_NAME'),
            api_key=app.config.get('CLOUDINARY_API_KEY'),
            api_secret=app.config.get('CLOUDINARY_API_SECRET'),
            secure=True
        )

    def upload_object(self, bucket, key, file):
        """
        Upload a binary to `bucket` under `key`, refusing to overwrite.

        Args:
            bucket: Cloudinary folder acting as the bucket
            key: Storage key, optionally with a file extension
            file: File-like object or bytes

        Returns:
            dict: Contains upload result with 'success', 'url', 'public_id', 'bytes' or 'error'
        """
        if file is None:
            return {'success': False, 'error': 'No file provided'}

        public_id, extension = self._split_key(bucket, key)

        try:
            upload_result = cloudinary.uploader.upload(
                file,
                public_id=public_id,
                resource_type='image',
                overwrite=False,
                unique_filename=False,
                tags=[bucket]
            )
        except Exception as e:
            current_app.logger.error(f"Cloudinary upload error for '{public_id}': {str(e)}")
            return {'success': False, 'error': 'Failed to upload image'}

        # With overwrite disabled Cloudinary hands back the existing asset instead of failing
        if upload_result.get('existing'):
            current_app.logger.warning(f"Cloudinary object '{public_id}' already exists")
            return {'success': False, 'error': 'An object with this key already exists'}

        current_app.logger.info(f"Uploaded '{public_id}' ({upload_result.get('bytes', 0)} bytes)")

        return {
            'success': True,
            'url': upload_result.get('secure_url'),
            'public_id': upload_result.get('public_id', public_id),
            'format': upload_result.get('format') or extension,
            'bytes': upload_result.get('bytes', 0)
        }

    def public_url(self, bucket, key):
        """Build the delivery URL for a stored key. No request is made."""
        public_id, extension = self._split_key(bucket, key)
        options = {'secure': True, 'resource_type': 'image'}
        if extension:
            options['format'] = extension
        url, _ = cloudinary.utils.cloudinary_url(public_id, **options)
        return url

    def delete_object(self, bucket, key):
        """
        Delete a stored object.

        Returns:
            dict: Contains 'success' and optionally 'error'
        """
        public_id, _ = self._split_key(bucket, key)
        try:
            result = cloudinary.uploader.destroy(public_id, resource_type='image')
            return {'success': result.get('result') == 'ok'}
        except Exception as e:
            current_app.logger.error(f"Cloudinary delete error for '{public_id}': {str(e)}")
            return {'success': False, 'error': 'Failed to delete image'}

    def _split_key(self, bucket, key):
        """Turn a bucket and key into a Cloudinary public id and an extension."""
        name, extension = os.path.splitext(key)
        return f"{bucket}/{name}", extension.lstrip('.').lower() or None

    def get_file_extension(self, filename):
        """Extract file extension from filename."""
        if not filename or '.' not in filename:
            return None
        return filename.rsplit('.', 1)[1].lower()

    def is_allowed_image(self, filename, allowed_extensions):
        """Check if file extension is allowed for test images."""
        extension = self.get_file_extension(filename)
        return extension is not None and extension in allowed_extensions

    def file_size(self, file):
        """Size in bytes of a file-like object or bytes, leaving the pointer at the start."""
        if isinstance(file, (bytes, bytearray)):
            return len(file)
        file.seek(0, os.SEEK_END)
        size = file.tell()
        file.seek(0)  # Reset file pointer
        return size


# Create a single instance
cloudinary_manager = CloudinaryManager()
