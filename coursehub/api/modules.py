from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from coursehub.api.base import CamelModel, Message
from coursehub.api.courses import ModuleDetail, ModuleOut, course_or_404
from coursehub.core.auth import admin_only
from coursehub.core.database import get_db
from coursehub.models.orm import Module

router = APIRouter()


class ModuleIn(CamelModel):
    course_id: int
    title: str
    description: Optional[str] = None
    order_index: int = 0


class ModuleUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    order_index: Optional[int] = None


def module_or_404(db: Session, module_id: int) -> Module:
    module = db.get(Module, module_id)
    if not module:
        raise HTTPException(404, "Module not found")
    return module


@router.get("/course/{course_id}", response_model=List[ModuleDetail])
def modules_by_course(course_id: int, db: Session = Depends(get_db)):
    return db.scalars(
        select(Module).where(Module.course_id == course_id).order_by(Module.order_index, Module.id)
    ).all()


@router.get("/{module_id}", response_model=ModuleDetail)
def get_module(module_id: int, db: Session = Depends(get_db)):
    return module_or_404(db, module_id)


@router.post("", response_model=ModuleOut, status_code=201, dependencies=[Depends(admin_only)])
def create_module(payload: ModuleIn, db: Session = Depends(get_db)):
    course_or_404(db, payload.course_id)
    module = Module(**payload.model_dump())
    db.add(module)
    db.commit()
    return module


@router.put("/{module_id}", response_model=ModuleOut, dependencies=[Depends(admin_only)])
def update_module(module_id: int, payload: ModuleUpdate, db: Session = Depends(get_db)):
    module = module_or_404(db, module_id)
    for key, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(module, key, value)
    db.commit()
    return module


@router.delete("/{module_id}", response_model=Message, dependencies=[Depends(admin_only)])
def delete_module(module_id: int, db: Session = Depends(get_db)):
    db.delete(module_or_404(db, module_id))
    db.commit()
    return Message(message="Module deleted successfully")
