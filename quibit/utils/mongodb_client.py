from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import DuplicateKeyError

from quibit.models.snapshot import IdeaCandidate
from quibit.utils.config import config
from quibit.utils.logger import logger
from quibit.utils.repository import (
    DuplicateFingerprintError,
    IdeaRepository,
    Provenance,
    build_evolution_record,
    build_record,
    record_to_prior,
)


class MongoDBClient(IdeaRepository):
    def __init__(self, client=None):
        self.mongo_uri = config.mongo_uri
        self.client = client or MongoClient(self.mongo_uri)

        self.db = self.client[config.mongo_db_name]
        self.projects = self.db.projects
        self.evolutions = self.db.evolutions
        self.create_indexes()

    def create_indexes(self):
        """Create necessary indexes for collections."""
        # Duplicate detection relies on this index, not on a pre-check
        self.projects.create_index("dna_hash", unique=True)
        self.projects.create_index("created_at")
        self.evolutions.create_index([("project_id", ASCENDING), ("created_at", ASCENDING)])

    def list_recent_for_similarity(self, limit):
        cursor = self.projects.find({}).sort("created_at", DESCENDING).limit(limit)
        return [record_to_prior(self._decode(doc)) for doc in cursor]

    def save(self, candidate: IdeaCandidate, fingerprint: str, provenance: Provenance) -> str:
        record = build_record(candidate, fingerprint, provenance)
        try:
            result = self.projects.insert_one(record)
        except DuplicateKeyError as e:
            raise DuplicateFingerprintError(fingerprint) from e
        logger.debug(f"Stored project {result.inserted_id} ({fingerprint[:12]})")
        return str(result.inserted_id)

    def get(self, idea_id):
        """Fetch a stored project by id."""
        try:
            object_id = ObjectId(idea_id)
        except InvalidId:
            return None
        doc = self.projects.find_one({"_id": object_id})
        return self._decode(doc) if doc else None

    def list_recent(self, limit=10):
        cursor = self.projects.find({}).sort("created_at", DESCENDING).limit(limit)
        return [self._decode(doc) for doc in cursor]

    def save_evolution(self, project_id, raw_json, provenance):
        """Store an accepted evolution, keyed by the project's string id."""
        result = self.evolutions.insert_one(build_evolution_record(str(project_id), raw_json, provenance))
        logger.debug(f"Stored evolution {result.inserted_id} of project {project_id}")
        return str(result.inserted_id)

    def list_evolutions(self, project_id):
        cursor = self.evolutions.find({"project_id": str(project_id)}).sort("created_at", ASCENDING)
        return [self._decode(doc) for doc in cursor]

    @staticmethod
    def _decode(doc):
        record = dict(doc)
        record["id"] = str(record.pop("_id"))
        return record

    def close(self):
        """Close the MongoDB connection."""
        if self.client:
            self.client.close()
