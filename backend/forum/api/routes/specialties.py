from typing import Annotated, Any

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlmodel import Session, col, select

from forum.api.deps import AdminUser, SessionDep
from forum.crud import count_grouped
from forum.models import (
    Message,
    Prompt,
    SpecialtiesPublic,
    Specialty,
    SpecialtyCreate,
    SpecialtyMutationResponse,
    SpecialtyPublic,
    SpecialtyResponse,
    SpecialtyUpdate,
    SpecialtyWithCounts,
    UserSpecialtyLink,
)
from forum.uploads import ICON_MAX_BYTES, remove_upload, save_upload

router = APIRouter(prefix="/specialties", tags=["specialties"])

ICON_FOLDER = "specialties"


def with_counts(session: Session, specialties: list[Specialty]) -> list[SpecialtyWithCounts]:
    ids = [s.id for s in specialties if s.id is not None]
    prompts = count_grouped(session, Prompt.specialty_id, ids)
    users = count_grouped(session, UserSpecialtyLink.specialty_id, ids)
    return [
        SpecialtyWithCounts(
            **SpecialtyPublic.model_validate(s).model_dump(),
            prompts=prompts.get(s.id, 0),
            users=users.get(s.id, 0),
        )
        for s in specialties
    ]


def _parse_form(model: Any, **fields: Any) -> Any:
    # Form fields skip body validation, so run it here with the same error shape
    try:
        return model(**{key: value for key, value in fields.items() if value is not None})
    except ValidationError as exc:
        raise RequestValidationError(exc.errors())


def _ensure_unique_name(session: Session, name: str, exclude_id: int | None = None) -> None:
    statement = select(Specialty).where(Specialty.name == name)
    if exclude_id is not None:
        statement = statement.where(Specialty.id != exclude_id)
    if session.exec(statement).first():
        raise HTTPException(
            status_code=400, detail="A specialty with this name already exists"
        )


def _get_specialty_or_404(session: Session, id: int) -> Specialty:
    specialty = session.get(Specialty, id)
    if not specialty:
        raise HTTPException(status_code=404, detail="Specialty not found")
    return specialty


@router.get("", response_model=SpecialtiesPublic)
def read_specialties(session: SessionDep) -> Any:
    specialties = session.exec(select(Specialty).order_by(col(Specialty.name))).all()
    return SpecialtiesPublic(specialties=with_counts(session, list(specialties)))


@router.get("/{id}", response_model=SpecialtyResponse)
def read_specialty(id: int, session: SessionDep) -> Any:
    specialty = _get_specialty_or_404(session, id)
    return SpecialtyResponse(specialty=with_counts(session, [specialty])[0])


@router.post("", response_model=SpecialtyMutationResponse, status_code=201)
def create_specialty(
    session: SessionDep,
    current_user: AdminUser,
    name: Annotated[str, Form()],
    description: Annotated[str | None, Form()] = None,
    color: Annotated[str | None, Form()] = None,
    icon: Annotated[UploadFile | None, File()] = None,
) -> Any:
    """
    Create a specialty. The optional icon is stored under uploads/specialties.
    """
    specialty_in: SpecialtyCreate = _parse_form(
        SpecialtyCreate, name=name, description=description, color=color
    )
    _ensure_unique_name(session, specialty_in.name)

    specialty = Specialty.model_validate(specialty_in)
    if icon is not None and icon.filename:
        specialty.icon = save_upload(icon, ICON_FOLDER, ICON_MAX_BYTES)
    session.add(specialty)
    session.commit()
    session.refresh(specialty)
    return SpecialtyMutationResponse(
        message="Specialty created successfully",
        specialty=SpecialtyPublic.model_validate(specialty),
    )


@router.put("/{id}", response_model=SpecialtyMutationResponse)
def update_specialty(
    session: SessionDep,
    current_user: AdminUser,
    id: int,
    name: Annotated[str | None, Form()] = None,
    description: Annotated[str | None, Form()] = None,
    color: Annotated[str | None, Form()] = None,
    icon: Annotated[UploadFile | None, File()] = None,
) -> Any:
    specialty = _get_specialty_or_404(session, id)
    specialty_in: SpecialtyUpdate = _parse_form(
        SpecialtyUpdate, name=name, description=description, color=color
    )
    if specialty_in.name is not None:
        _ensure_unique_name(session, specialty_in.name, exclude_id=specialty.id)

    specialty.sqlmodel_update(specialty_in.model_dump(exclude_unset=True))
    if icon is not None and icon.filename:
        previous = specialty.icon
        specialty.icon = save_upload(icon, ICON_FOLDER, ICON_MAX_BYTES)
        remove_upload(previous)
    session.add(specialty)
    session.commit()
    session.refresh(specialty)
    return SpecialtyMutationResponse(
        message="Specialty updated successfully",
        specialty=SpecialtyPublic.model_validate(specialty),
    )


@router.delete("/{id}", response_model=Message)
def delete_specialty(session: SessionDep, current_user: AdminUser, id: int) -> Any:
    """
    Delete a specialty. Its prompts stay and lose the reference.
    """
    specialty = _get_specialty_or_404(session, id)
    icon = specialty.icon
    session.delete(specialty)
    session.commit()
    remove_upload(icon)
    return Message(message="Specialty deleted successfully")
