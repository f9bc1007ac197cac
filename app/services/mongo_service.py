"""
MongoDB Service - CRUD operations for document collections.

Collections in this database:
1. admin_users - Teacher/administrator accounts (role is always "admin")
2. users       - Student and parent accounts
3. batches     - Batches with their student roster and embedded announcements

Relations:
- batches.teacher_id   -> admin_users._id
- batches.students[]   -> users._id
- users.parentEmail    -> users.email of the parent (weak relation: matched
  by value, never enforced, broken links simply yield no rows)
"""

import logging
from datetime import datetime
from typing import Optional, List, Dict, Any, Iterable, Tuple
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import DESCENDING
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from app.core.errors import ConflictError
from app.db.mongodb import get_collection, COLLECTIONS

logger = logging.getLogger(__name__)

PUBLIC_FIELDS = {"name": 1, "email": 1}
ANNOUNCEMENT_WRITE_ATTEMPTS = 5


# ============================================================
# HELPERS: ObjectId handling and JSON serialization
# ============================================================

def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse a hex id. Returns None for anything that is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def serialize_doc(doc: Any) -> Any:
    """Convert MongoDB document to JSON-serializable dict (ObjectIds become hex strings)."""
    if doc is None:
        return None
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, dict):
        return {key: serialize_doc(value) for key, value in doc.items()}
    if isinstance(doc, list):
        return [serialize_doc(item) for item in doc]
    return doc


def serialize_docs(docs: Iterable) -> list:
    """Convert list of MongoDB documents to JSON-serializable list."""
    return [serialize_doc(doc) for doc in docs]


def _public_map(collection: Collection, ids: Iterable[ObjectId]) -> Dict[ObjectId, dict]:
    ids = list({i for i in ids if i is not None})
    if not ids:
        return {}
    cursor = collection.find({"_id": {"$in": ids}}, PUBLIC_FIELDS)
    return {doc["_id"]: doc for doc in cursor}


# ============================================================
# ADMIN USERS COLLECTION
# ============================================================

class AdminUserService:
    """
    Handles administrator (teacher) accounts.
    Admins live in their own collection and never authenticate through /user.
    """

    def __init__(self, db: Database = None):
        self.collection: Collection = get_collection(COLLECTIONS["admin_users"], db)

    def get_by_id(self, admin_id: Any) -> Optional[dict]:
        oid = to_object_id(admin_id)
        if oid is None:
            return None
        return self.collection.find_one({"_id": oid})

    def get_by_email(self, email: str) -> Optional[dict]:
        return self.collection.find_one({"email": email})

    def create(self, name: str, email: str, password_hash: str) -> dict:
        """
        Insert a new admin. A duplicate email (including one that slipped
        past the caller's pre-check) raises ConflictError.
        """
        now = datetime.utcnow()
        doc = {
            "name": name,
            "email": email,
            "password": password_hash,
            "role": "admin",
            "active": True,
            "createdAt": now,
            "updatedAt": now
        }
        try:
            result = self.collection.insert_one(doc)
        except DuplicateKeyError:
            raise ConflictError("Admin email already exists")
        doc["_id"] = result.inserted_id
        return doc

    def list_public(self) -> List[dict]:
        """All admins, name and email only."""
        return list(self.collection.find({}, PUBLIC_FIELDS).sort("createdAt", DESCENDING))

    def public_map(self, ids: Iterable[ObjectId]) -> Dict[ObjectId, dict]:
        return _public_map(self.collection, ids)


# ============================================================
# USERS COLLECTION (students and parents)
# ============================================================

class UserService:
    """
    Handles student and parent accounts.
    A student is linked to its parent only through parentEmail.
    """

    def __init__(self, db: Database = None):
        self.collection: Collection = get_collection(COLLECTIONS["users"], db)

    def get_by_id(self, user_id: Any) -> Optional[dict]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        return self.collection.find_one({"_id": oid})

    def get_by_email(self, email: str, role: str = None) -> Optional[dict]:
        query = {"email": email}
        if role:
            query["role"] = role
        return self.collection.find_one(query)

    def get_by_login_email(self, email: str) -> Optional[dict]:
        """
        Legacy login lookup: the account owning the email first, otherwise
        the student whose parentEmail matches it.
        """
        user = self.collection.find_one({"email": email})
        if user:
            return user
        return self.collection.find_one({"parentEmail": email})

    def any_email_exists(self, *emails: str) -> bool:
        return self.collection.find_one({"email": {"$in": list(emails)}}) is not None

    def email_taken_by_other(self, email: str, user_id: ObjectId) -> bool:
        return self.collection.find_one({"email": email, "_id": {"$ne": user_id}}) is not None

    def create_student_with_parent(
        self,
        name: str,
        email: str,
        parent_email: str,
        password_hash: str
    ) -> Tuple[dict, dict]:
        """
        Create a student and its parent account from one registration.

        Both accounts share the password hash. If the parent insert fails
        the student is deleted again so no orphaned half-registration is
        left behind; the original failure is re-raised (duplicate keys as
        ConflictError).
        """
        now = datetime.utcnow()
        student = {
            "name": name,
            "email": email,
            "parentEmail": parent_email,
            "password": password_hash,
            "role": "student",
            "createdAt": now,
            "updatedAt": now
        }
        try:
            student["_id"] = self.collection.insert_one(student).inserted_id
        except DuplicateKeyError:
            raise ConflictError("Email already exists")

        parent = {
            "name": f"Parent of {name}",
            "email": parent_email,
            "password": password_hash,
            "role": "parent",
            "createdAt": now,
            "updatedAt": now
        }
        try:
            parent["_id"] = self.collection.insert_one(parent).inserted_id
        except Exception as e:
            self.collection.delete_one({"_id": student["_id"]})
            logger.warning(
                "paired_registration_rollback student_id=%s error=%s", student["_id"], e
            )
            if isinstance(e, DuplicateKeyError):
                raise ConflictError("Email already exists")
            raise
        return student, parent

    def find_students(self, ids: List[ObjectId]) -> List[dict]:
        return list(self.collection.find({"_id": {"$in": ids}, "role": "student"}, {"_id": 1}))

    def find_linked_students(self, parent_email: str) -> List[dict]:
        """Students whose parentEmail equals the given parent email."""
        return list(self.collection.find(
            {"parentEmail": parent_email, "role": "student"},
            PUBLIC_FIELDS
        ))

    def update(self, user_id: ObjectId, fields: dict) -> bool:
        fields = dict(fields, updatedAt=datetime.utcnow())
        try:
            result = self.collection.update_one({"_id": user_id}, {"$set": fields})
        except DuplicateKeyError:
            raise ConflictError("Email already exists")
        return result.matched_count > 0

    def public_map(self, ids: Iterable[ObjectId]) -> Dict[ObjectId, dict]:
        return _public_map(self.collection, ids)


# ============================================================
# BATCHES COLLECTION
# ============================================================

class BatchService:
    """
    Handles batches. Students are stored as an ordered list of user ids,
    announcements are embedded newest-first.
    """

    def __init__(self, db: Database = None):
        self.collection: Collection = get_collection(COLLECTIONS["batches"], db)
        self.admins = AdminUserService(db)
        self.users = UserService(db)

    def get_by_id(self, batch_id: Any) -> Optional[dict]:
        oid = to_object_id(batch_id)
        if oid is None:
            return None
        return self.collection.find_one({"_id": oid})

    def get_by_code(self, batch_code: str) -> Optional[dict]:
        return self.collection.find_one({"batch_code": batch_code.upper()})

    def create(self, batch_code: str, name: str, class_label: str, teacher_id: ObjectId) -> dict:
        now = datetime.utcnow()
        doc = {
            "batch_code": batch_code.upper(),
            "name": name,
            "class": class_label,
            "teacher_id": teacher_id,
            "students": [],
            "announcements": [],
            "createdAt": now,
            "updatedAt": now
        }
        try:
            result = self.collection.insert_one(doc)
        except DuplicateKeyError:
            raise ConflictError("Batch code already exists")
        doc["_id"] = result.inserted_id
        return doc

    def add_students(self, batch_id: ObjectId, student_ids: List[ObjectId]) -> bool:
        """Append ids in order; ids already on the roster are skipped."""
        result = self.collection.update_one(
            {"_id": batch_id},
            {
                "$addToSet": {"students": {"$each": student_ids}},
                "$set": {"updatedAt": datetime.utcnow()}
            }
        )
        return result.modified_count > 0

    def add_student(self, batch_id: ObjectId, student_id: ObjectId) -> bool:
        """
        Enroll a single student. Returns False if the student was already
        on the roster (including when a concurrent request got there first).
        """
        result = self.collection.update_one(
            {"_id": batch_id, "students": {"$ne": student_id}},
            {
                "$push": {"students": student_id},
                "$set": {"updatedAt": datetime.utcnow()}
            }
        )
        return result.modified_count > 0

    def add_announcement(self, batch_id: ObjectId, title: str, content: str, teacher_id: ObjectId) -> Optional[dict]:
        """
        Insert an announcement at the front of the batch's list.

        Announcements are never removed, so the list length works as a
        version: the write only lands if nobody prepended in between.
        Returns None if the batch does not exist.
        """
        now = datetime.utcnow()
        announcement = {
            "_id": ObjectId(),
            "title": title,
            "content": content,
            "teacher_id": teacher_id,
            "createdAt": now
        }
        for _ in range(ANNOUNCEMENT_WRITE_ATTEMPTS):
            batch = self.collection.find_one({"_id": batch_id}, {"announcements": 1})
            if batch is None:
                return None
            current = batch.get("announcements", [])
            result = self.collection.update_one(
                {"_id": batch_id, "announcements": {"$size": len(current)}},
                {"$set": {"announcements": [announcement] + current, "updatedAt": now}}
            )
            if result.modified_count:
                return announcement
        raise ConflictError("Batch is being modified, please retry")

    def list_all(self) -> List[dict]:
        return list(self.collection.find().sort("createdAt", DESCENDING))

    def list_for_student(self, student_id: ObjectId) -> List[dict]:
        return list(self.collection.find({"students": student_id}).sort("createdAt", DESCENDING))

    # --------------------------------------------------------
    # Population: replace references with {_id, name, email}
    # --------------------------------------------------------

    def populate_announcements(self, announcements: List[dict], teachers: Dict[ObjectId, dict] = None) -> List[dict]:
        if teachers is None:
            teachers = self.admins.public_map(a.get("teacher_id") for a in announcements)
        return [
            dict(a, teacher_id=teachers.get(a.get("teacher_id"), a.get("teacher_id")))
            for a in announcements
        ]

    def populate_many(self, batches: List[dict], students: bool = True) -> List[dict]:
        """
        Populate teacher, students and announcement teachers for a list of
        batches with one lookup per collection. Returns serialized dicts.
        """
        teacher_ids = []
        student_ids = []
        for batch in batches:
            teacher_ids.append(batch.get("teacher_id"))
            teacher_ids.extend(a.get("teacher_id") for a in batch.get("announcements", []))
            if students:
                student_ids.extend(batch.get("students", []))

        teachers = self.admins.public_map(teacher_ids)
        users = self.users.public_map(student_ids) if students else {}

        populated = []
        for batch in batches:
            doc = dict(batch)
            doc["teacher_id"] = teachers.get(batch.get("teacher_id"))
            if students:
                # unresolvable ids are dropped, stored order is kept
                doc["students"] = [users[s] for s in batch.get("students", []) if s in users]
            doc["announcements"] = self.populate_announcements(batch.get("announcements", []), teachers)
            populated.append(serialize_doc(doc))
        return populated

    def populate(self, batch: dict) -> dict:
        return self.populate_many([batch])[0]
