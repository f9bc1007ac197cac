"""
Admin Routes

POST /admin/register - Register administrator (teacher)
POST /admin/login - Login and get JWT token
POST /admin/batches - Create batch
POST /admin/batches/{batch_id}/students - Add students to batch
GET /admin/batches - List all batches
GET /admin/batches/{batch_id} - Get batch details
GET /admin/teachers - List teachers
POST /admin/batches/{batch_id}/announcements - Create announcement (admin token)
GET /admin/batches/{batch_id}/announcements - List announcements
"""

import logging
from fastapi import APIRouter, Depends
from pymongo.database import Database

from app.db.mongodb import get_mongo_db
from app.core.auth import AuthService, get_auth_service, get_current_admin
from app.core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError, UnauthorizedError
from app.services.mongo_service import (
    AdminUserService, BatchService, UserService, serialize_doc, serialize_docs, to_object_id
)
from app.schemas.schemas import (
    AdminRegisterRequest, AdminLoginRequest, AdminRegisterResponse, AdminLoginResponse,
    BatchCreate, AddStudentsRequest, AnnouncementCreate, BatchResponse, BatchListResponse,
    TeacherListResponse, AnnouncementResponse, AnnouncementListResponse
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/register", response_model=AdminRegisterResponse, status_code=201)
async def register(
    request: AdminRegisterRequest,
    db: Database = Depends(get_mongo_db),
    auth: AuthService = Depends(get_auth_service)
):
    """Register a new administrator and return a token right away."""
    admins = AdminUserService(db)
    if admins.get_by_email(request.email):
        raise ConflictError("Admin email already exists")

    admin = admins.create(
        name=request.name,
        email=request.email,
        password_hash=auth.hash_password(request.password)
    )
    admin_id = str(admin["_id"])
    token = auth.create_access_token(data={"sub": admin_id, "email": admin["email"], "role": "admin"})
    logger.info("admin_registered admin_id=%s", admin_id)

    return AdminRegisterResponse(
        message="Admin registration successful",
        token=token,
        admin={"id": admin_id, "name": admin["name"], "email": admin["email"], "role": "admin"}
    )


@router.post("/login", response_model=AdminLoginResponse)
async def login(
    request: AdminLoginRequest,
    db: Database = Depends(get_mongo_db),
    auth: AuthService = Depends(get_auth_service)
):
    """
    Login and receive JWT access token.

    Include token in requests: Authorization: Bearer <token>
    """
    admin = AdminUserService(db).get_by_email(request.email)
    if not admin:
        raise NotFoundError("Admin not found")

    if not auth.verify_password(request.password, admin["password"]):
        logger.info("login_failed kind=admin reason=password")
        raise UnauthorizedError("Invalid password")

    if not admin.get("active", True):
        raise ForbiddenError("Account deactivated")

    # No role claim here; get_current_admin resolves the subject instead.
    token = auth.create_access_token(data={"sub": str(admin["_id"]), "email": admin["email"]})

    return AdminLoginResponse(
        message="Admin login successful",
        token=token,
        admin={"name": admin["name"], "email": admin["email"]}
    )


@router.post("/batches", response_model=BatchResponse, status_code=201)
async def create_batch(data: BatchCreate, db: Database = Depends(get_mongo_db)):
    """Create a batch owned by the given teacher. Batch codes are stored uppercase."""
    admin = AdminUserService(db).get_by_id(data.teacher_id)
    if not admin:
        raise NotFoundError("Teacher not found")

    batches = BatchService(db)
    if batches.get_by_code(data.batch_code):
        raise ConflictError("Batch code already exists")

    batch = batches.create(
        batch_code=data.batch_code,
        name=data.name,
        class_label=data.class_label,
        teacher_id=admin["_id"]
    )
    logger.info("batch_created batch_id=%s code=%s", batch["_id"], batch["batch_code"])

    return BatchResponse(message="Batch created successfully", batch=batches.populate(batch))


@router.post("/batches/{batch_id}/students", response_model=BatchResponse)
async def add_students(batch_id: str, data: AddStudentsRequest, db: Database = Depends(get_mongo_db)):
    """
    Add students to a batch.

    Every id must resolve to a distinct student account, otherwise nothing
    is written (a repeated id in the request counts as invalid). Students
    already on the roster are skipped.
    """
    student_ids = data.studentIds
    if not isinstance(student_ids, list) or len(student_ids) == 0:
        raise BadRequestError("Invalid student IDs")

    batches = BatchService(db)
    batch = batches.get_by_id(batch_id)
    if not batch:
        raise NotFoundError("Batch not found")

    oids = []
    for value in student_ids:
        oid = to_object_id(value) if isinstance(value, str) else None
        if oid is None:
            raise BadRequestError("One or more invalid student IDs")
        oids.append(oid)

    found = UserService(db).find_students(oids)
    if len(found) != len(student_ids):
        raise BadRequestError("One or more invalid student IDs")

    new_ids = [oid for oid in oids if oid not in batch.get("students", [])]
    if new_ids:
        batches.add_students(batch["_id"], new_ids)
    logger.info("students_added batch_id=%s added=%d", batch["_id"], len(new_ids))

    return BatchResponse(
        message="Students added successfully",
        batch=batches.populate(batches.get_by_id(batch["_id"]))
    )


@router.get("/batches", response_model=BatchListResponse)
async def list_batches(db: Database = Depends(get_mongo_db)):
    """All batches, newest first."""
    batches = BatchService(db)
    return BatchListResponse(batches=batches.populate_many(batches.list_all()))


@router.get("/batches/{batch_id}", response_model=BatchResponse)
async def get_batch(batch_id: str, db: Database = Depends(get_mongo_db)):
    batches = BatchService(db)
    batch = batches.get_by_id(batch_id)
    if not batch:
        raise NotFoundError("Batch not found")

    populated = batches.populate(batch)
    return BatchResponse(batch={
        "_id": populated["_id"],
        "name": populated["name"],
        "batch_code": populated["batch_code"],
        "class": populated["class"],
        "teacher_id": populated["teacher_id"],
        "students": populated["students"],
        "createdAt": populated["createdAt"],
        # batches are never archived
        "status": "active"
    })


@router.get("/teachers", response_model=TeacherListResponse)
async def list_teachers(db: Database = Depends(get_mongo_db)):
    """Teachers are the administrator accounts."""
    teachers = serialize_docs(AdminUserService(db).list_public())
    return TeacherListResponse(teachers=teachers, count=len(teachers))


@router.post("/batches/{batch_id}/announcements", response_model=AnnouncementResponse, status_code=201)
async def create_announcement(
    batch_id: str,
    data: AnnouncementCreate,
    admin: dict = Depends(get_current_admin),
    db: Database = Depends(get_mongo_db)
):
    """Post an announcement to a batch. Only the batch's own teacher may do this."""
    batches = BatchService(db)
    batch = batches.get_by_id(batch_id)
    if not batch:
        raise NotFoundError("Batch not found")

    if batch["teacher_id"] != admin["_id"]:
        raise ForbiddenError("Unauthorized to create announcement for this batch")

    announcement = batches.add_announcement(batch["_id"], data.title, data.content, admin["_id"])
    if announcement is None:
        raise NotFoundError("Batch not found")
    logger.info("announcement_created batch_id=%s announcement_id=%s", batch["_id"], announcement["_id"])

    populated = batches.populate_announcements([announcement])[0]
    return AnnouncementResponse(
        message="Announcement created successfully",
        announcement=serialize_doc(populated)
    )


@router.get("/batches/{batch_id}/announcements", response_model=AnnouncementListResponse)
async def list_announcements(batch_id: str, db: Database = Depends(get_mongo_db)):
    """Announcements as stored, newest first."""
    batches = BatchService(db)
    batch = batches.get_by_id(batch_id)
    if not batch:
        raise NotFoundError("Batch not found")

    announcements = batches.populate_announcements(batch.get("announcements", []))
    return AnnouncementListResponse(announcements=serialize_docs(announcements))
