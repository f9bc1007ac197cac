"""
User Routes (students and parents)

POST /user/register - Register student (creates the parent account too)
POST /user/login - Legacy login (student email or parent email)
POST /user/login/student - Student login
POST /user/login/parent - Parent login, returns linked students
PUT /user/profile - Update name/email/password
POST /user/join-batch - Student joins a batch by code
GET /user/my-batches - Batches of the logged in student
GET /user/parent/student-batches - Batches of every linked student
GET /user/student/batches/{batch_id} - Batch details for an enrolled student
GET /user/parent/batches/{batch_id} - Batch details for a linked parent
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

from app.db.mongodb import get_mongo_db
from app.core.auth import (
    AuthService, get_auth_service, get_current_user, get_current_student, get_current_parent
)
from app.core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError, UnauthorizedError
from app.services.mongo_service import BatchService, UserService, serialize_doc, serialize_docs
from app.schemas.schemas import (
    UserRegisterRequest, UserLoginRequest, UserTokenResponse, ParentLoginResponse,
    ProfileUpdateRequest, JoinBatchRequest, BatchResponse, BatchListResponse,
    ParentStudentBatchesResponse, MessageResponse
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["Users"])


def _user_public(user: dict, with_parent_email: bool = False) -> dict:
    public = {
        "id": str(user["_id"]),
        "name": user["name"],
        "email": user["email"],
        "role": user["role"]
    }
    if with_parent_email:
        public["parentEmail"] = user.get("parentEmail")
    return public


def _check_password(auth: AuthService, user: Optional[dict], password: str, not_found: str) -> dict:
    if not user:
        raise NotFoundError(not_found)
    if not auth.verify_password(password, user["password"]):
        logger.info("login_failed kind=%s reason=password", user.get("role"))
        raise UnauthorizedError("Invalid password")
    return user


def _batch_summary(batch: dict) -> dict:
    teacher = batch.get("teacher_id") or {}
    return {
        "_id": batch["_id"],
        "name": batch["name"],
        "batch_code": batch["batch_code"],
        "class": batch["class"],
        "teacher": {
            "name": teacher.get("name", "Not Assigned"),
            "email": teacher.get("email")
        },
        "studentsCount": len(batch.get("students", [])),
        "createdAt": batch.get("createdAt")
    }


def _batch_details(batch: dict) -> dict:
    return {
        "_id": batch["_id"],
        "name": batch["name"],
        "batch_code": batch["batch_code"],
        "class": batch["class"],
        "teacher": batch.get("teacher_id"),
        "studentsCount": len(batch.get("students", [])),
        "announcements": batch.get("announcements", []),
        "createdAt": batch.get("createdAt")
    }


# ============================================================
# REGISTRATION & LOGIN
# ============================================================

@router.post("/register", response_model=UserTokenResponse, status_code=201)
async def register(
    request: UserRegisterRequest,
    db: Database = Depends(get_mongo_db),
    auth: AuthService = Depends(get_auth_service)
):
    """
    Register a student. A parent account is created for parentEmail with the
    same password.
    """
    users = UserService(db)
    if users.any_email_exists(request.email, request.parent_email):
        raise ConflictError("Email already exists")

    student, _ = users.create_student_with_parent(
        name=request.name,
        email=request.email,
        parent_email=request.parent_email,
        password_hash=auth.hash_password(request.password)
    )
    logger.info("student_registered student_id=%s", student["_id"])

    token = auth.create_access_token(
        data={"sub": str(student["_id"]), "email": student["email"], "role": "student"}
    )
    return UserTokenResponse(
        message="Registration successful",
        token=token,
        user=_user_public(student, with_parent_email=True)
    )


@router.post("/login", response_model=UserTokenResponse)
async def login(
    request: UserLoginRequest,
    db: Database = Depends(get_mongo_db),
    auth: AuthService = Depends(get_auth_service)
):
    """Legacy login, kept for older clients. Accepts either the student or the parent email."""
    user = UserService(db).get_by_login_email(request.email)
    user = _check_password(auth, user, request.password, "User not found")

    token = auth.create_access_token(
        data={"sub": str(user["_id"]), "email": user["email"], "role": user["role"]}
    )
    return UserTokenResponse(
        message="Login successful",
        token=token,
        user=_user_public(user, with_parent_email=True)
    )


@router.post("/login/student", response_model=UserTokenResponse)
async def login_student(
    request: UserLoginRequest,
    db: Database = Depends(get_mongo_db),
    auth: AuthService = Depends(get_auth_service)
):
    student = UserService(db).get_by_email(request.email, role="student")
    student = _check_password(auth, student, request.password, "Student not found")

    token = auth.create_extended_token(
        data={"sub": str(student["_id"]), "email": student["email"], "role": "student"}
    )
    return UserTokenResponse(message="Login successful", token=token, user=_user_public(student))


@router.post("/login/parent", response_model=ParentLoginResponse)
async def login_parent(
    request: UserLoginRequest,
    db: Database = Depends(get_mongo_db),
    auth: AuthService = Depends(get_auth_service)
):
    """Parent login. Also returns the students linked through parentEmail."""
    users = UserService(db)
    parent = users.get_by_email(request.email, role="parent")
    parent = _check_password(auth, parent, request.password, "Parent account not found with this email")

    linked_students = serialize_docs(users.find_linked_students(parent["email"]))

    token = auth.create_extended_token(
        data={"sub": str(parent["_id"]), "email": parent["email"], "role": "parent"}
    )
    return ParentLoginResponse(
        message="Login successful",
        token=token,
        user=_user_public(parent),
        linkedStudents=linked_students
    )


# ============================================================
# PROFILE
# ============================================================

@router.put("/profile", response_model=MessageResponse)
async def update_profile(
    data: ProfileUpdateRequest,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_mongo_db),
    auth: AuthService = Depends(get_auth_service)
):
    """Update profile. Only provided fields are updated; a password change needs the current password."""
    users = UserService(db)
    updates = {}

    if data.current_password and data.new_password:
        if not auth.verify_password(data.current_password, user["password"]):
            raise UnauthorizedError("Current password is incorrect")
        updates["password"] = auth.hash_password(data.new_password)

    if data.name:
        updates["name"] = data.name

    if data.email:
        if users.email_taken_by_other(data.email, user["_id"]):
            raise ConflictError("Email already exists")
        updates["email"] = data.email

    if not updates:
        raise BadRequestError("No fields to update")

    users.update(user["_id"], updates)
    logger.info("profile_updated user_id=%s fields=%s", user["_id"], ",".join(sorted(updates)))
    return MessageResponse(message="Profile updated successfully")


# ============================================================
# BATCHES
# ============================================================

@router.post("/join-batch", response_model=BatchResponse)
async def join_batch(
    data: JoinBatchRequest,
    student: dict = Depends(get_current_student),
    db: Database = Depends(get_mongo_db)
):
    batches = BatchService(db)
    batch = batches.get_by_code(data.batch_code)
    if not batch:
        raise NotFoundError("Batch not found. Please check the batch code")

    if student["_id"] in batch.get("students", []) or not batches.add_student(batch["_id"], student["_id"]):
        raise ConflictError("You are already enrolled in this batch")
    logger.info("batch_joined batch_id=%s student_id=%s", batch["_id"], student["_id"])

    return BatchResponse(
        message="Successfully joined batch",
        batch={"code": batch["batch_code"], "name": batch["name"], "class": batch["class"]}
    )


@router.get("/my-batches", response_model=BatchListResponse)
async def my_batches(
    student_id: Optional[str] = Query(None),
    student: dict = Depends(get_current_student),
    db: Database = Depends(get_mongo_db)
):
    """Batches the logged in student is enrolled in. student_id, if given, must be the caller."""
    if student_id is not None and student_id != str(student["_id"]):
        raise ForbiddenError("User ID mismatch")

    batches = BatchService(db)
    populated = batches.populate_many(batches.list_for_student(student["_id"]), students=False)
    return BatchListResponse(batches=[_batch_summary(b) for b in populated])


@router.get("/parent/student-batches", response_model=ParentStudentBatchesResponse)
async def parent_student_batches(
    parent: dict = Depends(get_current_parent),
    db: Database = Depends(get_mongo_db)
):
    """For every student linked to the parent, the batches that student is in."""
    batches = BatchService(db)
    data = []
    for student in UserService(db).find_linked_students(parent["email"]):
        populated = batches.populate_many(batches.list_for_student(student["_id"]), students=False)
        data.append({
            "student": {"id": str(student["_id"]), "name": student["name"], "email": student["email"]},
            "batches": [
                {
                    "_id": b["_id"],
                    "name": b["name"],
                    "batch_code": b["batch_code"],
                    "class": b["class"],
                    "teacher_id": b.get("teacher_id"),
                    "studentsCount": len(b.get("students", [])),
                    "announcements": len(b.get("announcements", [])),
                    "createdAt": b.get("createdAt")
                }
                for b in populated
            ]
        })
    return ParentStudentBatchesResponse(data=data)


@router.get("/student/batches/{batch_id}", response_model=BatchResponse)
async def student_batch_details(
    batch_id: str,
    user_id: Optional[str] = Query(None, alias="userId"),
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_mongo_db)
):
    if user_id != str(user["_id"]):
        raise ForbiddenError("User ID mismatch")

    batches = BatchService(db)
    batch = batches.get_by_id(batch_id)
    if not batch:
        raise NotFoundError("Batch not found")

    if user["_id"] not in batch.get("students", []):
        raise ForbiddenError("You are not enrolled in this batch")

    populated = batches.populate(batch)
    details = _batch_details(populated)
    details["students"] = populated["students"]
    return BatchResponse(batch=details)


@router.get("/parent/batches/{batch_id}", response_model=BatchResponse)
async def parent_batch_details(
    batch_id: str,
    parent_id: Optional[str] = Query(None, alias="parentId"),
    student_id: Optional[str] = Query(None, alias="studentId"),
    parent: dict = Depends(get_current_parent),
    db: Database = Depends(get_mongo_db)
):
    """Batch details for one of the parent's linked students."""
    if parent_id != str(parent["_id"]):
        raise ForbiddenError("Parent access required")

    student = UserService(db).get_by_id(student_id)
    if not student or student.get("role") != "student" or student.get("parentEmail") != parent["email"]:
        raise ForbiddenError("Invalid student access")

    batches = BatchService(db)
    batch = batches.get_by_id(batch_id)
    if not batch:
        raise NotFoundError("Batch not found")

    if student["_id"] not in batch.get("students", []):
        raise ForbiddenError("Student not enrolled in this batch")

    details = _batch_details(batches.populate(batch))
    details["student"] = serialize_doc({"_id": student["_id"], "name": student["name"], "email": student["email"]})
    return BatchResponse(batch=details)
