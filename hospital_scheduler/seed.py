"""
Demo roster for local runs (SCHEDULER_SEED_DEMO_DATA=true).
"""

from datetime import datetime, time, timedelta

from hospital_scheduler.database import Repository
from hospital_scheduler.models import Role, Shift, StaffMember
from hospital_scheduler.shifts import derive_status

DEMO_STAFF = [
    ("1", "Dr. Sarah Johnson", Role.DOCTOR, "Emergency", {"ACLS", "BLS", "ATLS"}),
    ("2", "Nurse Emily Rodriguez", Role.NURSE, "ICU", {"RN", "BLS", "CCRN"}),
    ("3", "Dr. Michael Chen", Role.DOCTOR, "Surgery", {"MD", "ABOS", "BLS"}),
    ("4", "Nurse Jennifer Martinez", Role.NURSE, "Pediatrics", {"RN", "BLS", "PALS"}),
    ("5", "Admin Lisa Thompson", Role.ADMIN, "Administration", {"PHR", "SHRM-CP"}),
    ("6", "Nurse David Wilson", Role.NURSE, "Emergency", {"RN", "BLS", "TNCC"}),
    ("7", "Dr. Amanda Foster", Role.DOCTOR, "Cardiology", {"MD", "ABIM", "BLS"}),
    ("8", "Nurse Robert Taylor", Role.NURSE, "Surgery", {"RN", "BLS", "CNOR"}),
    ("9", "Supervisor Grace Lee", Role.SUPERVISOR, "Emergency", {"RN", "BLS"}),
]

# (id, department, start hour, length hours, required role, capacity, assignees)
DEMO_SHIFTS = [
    ("s1", "Emergency", 7, 12, None, 3, ["1", "6"]),
    ("s2", "ICU", 19, 12, Role.NURSE, 2, ["2"]),
    ("s3", "Surgery", 8, 8, None, 4, ["3", "8"]),
    ("s4", "Pediatrics", 7, 12, Role.NURSE, 2, ["4"]),
    ("s5", "Cardiology", 9, 8, Role.DOCTOR, 2, ["7"]),
]


def _email(name: str) -> str:
    first, last = name.split()[-2:]
    return f"{first}.{last}@hospital.com".lower()


def seed_demo_data(repo: Repository, now: datetime) -> None:
    for staff_id, name, role, department, certs in DEMO_STAFF:
        repo.save_staff(
            StaffMember(
                id=staff_id,
                name=name,
                email=_email(name),
                role=role,
                department_id=department,
                certifications=certs,
                created_at=now,
            )
        )

    tomorrow = datetime.combine(
        (now + timedelta(days=1)).date(), time.min, tzinfo=now.tzinfo
    )
    for shift_id, department, hour, length, role, capacity, assignees in DEMO_SHIFTS:
        start = tomorrow + timedelta(hours=hour)
        repo.save_shift(
            Shift(
                id=shift_id,
                department_id=department,
                start_time=start,
                end_time=start + timedelta(hours=length),
                title=f"{department} shift",
                required_role=role,
                staff_required=capacity,
                assigned_staff=assignees,
                status=derive_status(len(assignees), capacity),
                created_at=now,
            )
        )
