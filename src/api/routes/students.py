"""
Student management endpoints for the signed-in trainer.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ...core.session import AuthResult
from ..dependencies import PersonalAuthDep, status_for

logger = logging.getLogger(__name__)

router = APIRouter()


class CreateStudentRequest(BaseModel):
    name: str = Field(description="Student's name")
    email: str = Field(description="E-mail the student will activate the account with")


class StudentResponse(BaseModel):
    student_doc_id: Optional[str] = Field(None, alias="studentDocId")
    status: str

    model_config = {"populate_by_name": True}


def _respond(result: AuthResult, new_status: str) -> StudentResponse:
    if not result.success:
        logger.warning(
            "Student update refused",
            extra={"target_status": new_status, "error": result.error}
        )
        raise HTTPException(status_code=status_for(result.failure), detail=result.error)
    return StudentResponse(student_doc_id=result.student_doc_id, status=new_status)


@router.post(
    "",
    response_model=StudentResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    summary="Pre-register a student",
    responses={409: {"description": "E-mail already registered"}},
)
async def create_student(request: CreateStudentRequest, auth: PersonalAuthDep) -> StudentResponse:
    result = await auth.create_student_account(request.name, request.email)
    return _respond(result, "pending")


@router.post(
    "/{student_doc_id}/deactivate",
    response_model=StudentResponse,
    response_model_by_alias=True,
    summary="Disable a student account",
)
async def deactivate_student(student_doc_id: str, auth: PersonalAuthDep) -> StudentResponse:
    result = await auth.deactivate_student(student_doc_id)
    return _respond(result, "inactive")


@router.post(
    "/{student_doc_id}/reactivate",
    response_model=StudentResponse,
    response_model_by_alias=True,
    summary="Re-enable a student account",
)
async def reactivate_student(student_doc_id: str, auth: PersonalAuthDep) -> StudentResponse:
    result = await auth.reactivate_student(student_doc_id)
    return _respond(result, "active")


@router.delete(
    "/{student_doc_id}",
    response_model=StudentResponse,
    response_model_by_alias=True,
    summary="Delete a student",
)
async def delete_student(student_doc_id: str, auth: PersonalAuthDep) -> StudentResponse:
    result = await auth.delete_student(student_doc_id)
    return _respond(result, "deleted")
