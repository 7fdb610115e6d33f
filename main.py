import logging

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from models import (
    RoundTripRequest, SingleTripRequest, VehicleCostRequest, Leg,
    DualTripCalculationResult, DualCalculationResult,
)
from compute import (
    calculate_round_trip_costs, calculate_transportation_costs,
    vehicle_leg_cost, single_trip_vehicle_cost,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME, description="Carpool cost split and driver settlement", debug=settings.DEBUG)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/")
def root():
    return {"message": f"{settings.APP_NAME} is running"}

@app.get("/health")
def health():
    return {"status": "healthy"}

# ========== Calculation endpoints ==========
@app.post("/calculate/round-trip", response_model=DualTripCalculationResult)
def calculate_round_trip(payload: RoundTripRequest):
    logger.info(
        "round-trip calculation: %d outbound, %d return vehicles",
        len(payload.outbound_vehicles), len(payload.return_vehicles),
    )
    return calculate_round_trip_costs(
        payload.outbound_vehicles,
        payload.return_vehicles,
        payload.participants,
        unit=settings.DENOMINATION,
        step=settings.ADJUSTMENT_STEP,
    )

@app.post("/calculate/single-trip", response_model=DualCalculationResult)
def calculate_single_trip(payload: SingleTripRequest):
    logger.info("single-trip calculation: %d vehicles", len(payload.vehicles))
    return calculate_transportation_costs(payload.vehicles, unit=settings.DENOMINATION)

@app.post("/vehicles/cost")
def vehicle_cost(payload: VehicleCostRequest, single_trip: bool = False):
    """Cost attributed to one vehicle on one leg."""
    if single_trip:
        if payload.linked_vehicle is not None:
            raise HTTPException(status_code=400, detail="A single trip has no linked vehicle.")
        cost = single_trip_vehicle_cost(payload.vehicle)
    else:
        if payload.leg == Leg.OUTBOUND and payload.linked_vehicle is not None:
            raise HTTPException(status_code=400, detail="Only return-leg vehicles are linked.")
        cost = vehicle_leg_cost(payload.vehicle, payload.leg, payload.linked_vehicle)
    return {"vehicle_id": payload.vehicle.id, "leg": payload.leg, "cost": str(cost)}
