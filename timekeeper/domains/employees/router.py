from datetime import time
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from timekeeper.db.session import get_session
from timekeeper.models.employee import Employee

router = APIRouter(prefix="/employees", tags=["employees"])


class EmployeeBase(BaseModel):
    name: str
    status: Literal["active", "on_leave", "terminated"] = "active"
    base_salary: float | None = Field(default=None, ge=0)
    work_end_time: time | None = None


class EmployeeCreate(EmployeeBase):
    pass


class EmployeeOut(EmployeeBase):
    id: int


def _serialize(row: Employee) -> EmployeeOut:
    return EmployeeOut(
        id=row.id,
        name=row.name,
        status=row.status,
        base_salary=float(row.base_salary) if row.base_salary is not None else None,
        work_end_time=row.work_end_time,
    )


@router.get("", response_model=list[EmployeeOut])
def list_employees(db: Session = Depends(get_session)):
    rows = db.query(Employee).order_by(Employee.name.asc(), Employee.id.asc()).all()
    return [_serialize(r) for r in rows]


@router.post("", response_model=EmployeeOut, status_code=201)
def create_employee(payload: EmployeeCreate, db: Session = Depends(get_session)):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=422, detail="Employee name is required")

    row = Employee(
        name=name,
        status=payload.status,
        base_salary=payload.base_salary,
        work_end_time=payload.work_end_time,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return _serialize(row)


@router.get("/{employee_id}", response_model=EmployeeOut)
def get_employee(employee_id: int, db: Session = Depends(get_session)):
    row = db.query(Employee).filter(Employee.id == employee_id).one_or_none()
    if not row:
        raise HTTPException(status_code=404, detail="Employee not found")
    return _serialize(row)
