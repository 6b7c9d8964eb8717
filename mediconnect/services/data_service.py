import logging
from sqlalchemy.exc import SQLAlchemyError

from mediconnect.extensions import db
from mediconnect.models import Patient, Doctor, Chemist, Prescription, PastTest, Allergy
from mediconnect.utils.cloudinary_util import cloudinary_manager
from mediconnect.utils.errors import NotFound, ServiceFailure

logger = logging.getLogger(__name__)

COLLECTIONS = {
    'patients': Patient,
    'doctors': Doctor,
    'chemists': Chemist,
    'prescriptions': Prescription,
    'past_tests': PastTest,
    'allergies': Allergy,
}


class DataService:
    """
    The one place the application talks to storage.

    Offers the four operation kinds the records workflows rely on: filtered
    queries, inserts, object uploads and object reference resolution (plus a
    best-effort object delete). Rows live in the SQLAlchemy collections above;
    binaries live in Cloudinary.
    """

    def __init__(self, storage=None):
        self.storage = storage or cloudinary_manager

    def _model(self, collection):
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise ServiceFailure(f"Unknown collection '{collection}'")

    def query(self, collection, filters=None, order_by=None, descending=False, single=False):
        """
        Select rows from a collection.

        Args:
            collection (str): collection name, e.g. 'prescriptions'
            filters (dict): field -> value equality predicates
            order_by (str): field to sort on; ties fall back to the primary key in the same direction
            descending (bool): sort direction
            single (bool): expect exactly one row

        Returns:
            list of rows, or the row itself when `single` is set

        Raises:
            NotFound: `single` is set and zero or several rows matched
            ServiceFailure: the database call failed
        """
        model = self._model(collection)
        filters = filters or {}

        logger.debug(f"DATA: querying '{collection}' where {filters}")
        try:
            stmt = model.query.filter_by(**filters)
            if order_by:
                primary_key = model.__mapper__.primary_key[0]
                column = getattr(model, order_by)
                if descending:
                    stmt = stmt.order_by(column.desc(), primary_key.desc())
                else:
                    stmt = stmt.order_by(column.asc(), primary_key.asc())
            rows = stmt.all()
        except (SQLAlchemyError, AttributeError) as e:
            db.session.rollback()
            logger.error(f"DATA: query on '{collection}' failed: {e}")
            raise ServiceFailure(f"Failed to query {collection}") from e

        if single:
            if len(rows) != 1:
                logger.info(f"DATA: expected one row in '{collection}' where {filters}, found {len(rows)}")
                raise NotFound(f"No single {collection} row matches")
            return rows[0]
        return rows

    def insert(self, collection, rows, returning=False):
        """Append rows to a collection in one commit. Returns the new rows when `returning` is set."""
        model = self._model(collection)
        try:
            objects = [model(**row) for row in rows]
            db.session.add_all(objects)
            db.session.commit()
        except (SQLAlchemyError, TypeError) as e:
            db.session.rollback()
            logger.error(f"DATA: insert into '{collection}' failed: {e}")
            raise ServiceFailure(f"Failed to save {collection}: {e}") from e

        logger.info(f"DATA: inserted {len(objects)} row(s) into '{collection}'")
        return objects if returning else None

    def upload(self, bucket, key, blob):
        """Store a binary under `key`. Fails if the key exists or the transfer fails."""
        result = self.storage.upload_object(bucket, key, blob)
        if not result['success']:
            raise ServiceFailure(result['error'], bucket=bucket, key=key)
        return result

    def public_url(self, bucket, key):
        try:
            return self.storage.public_url(bucket, key)
        except Exception as e:
            logger.error(f"DATA: could not resolve a URL for '{bucket}/{key}': {e}")
            raise ServiceFailure('Failed to resolve image URL', bucket=bucket, key=key) from e

    def remove(self, bucket, key):
        """Best-effort delete. Returns True when the object is gone."""
        return self.storage.delete_object(bucket, key)['success']


data_service = DataService()
