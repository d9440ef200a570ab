# clinicmis/api/router.py
from fastapi import APIRouter
from clinicmis.api import (
    # Front desk
    routes_patients,
    routes_visits,
    routes_staff,
    routes_clinics,

    # Prescription fulfillment
    routes_prescriptions,
    routes_pharmacy,
    routes_billing,
)

api_router = APIRouter()

api_router.include_router(routes_patients.router)
api_router.include_router(routes_visits.router)
api_router.include_router(routes_staff.router)
api_router.include_router(routes_clinics.router)
api_router.include_router(routes_prescriptions.router)
api_router.include_router(routes_pharmacy.router)
api_router.include_router(routes_billing.router)
