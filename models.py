from enum import Enum
from typing import Optional, Dict, List
from sqlmodel import SQLModel, Field
from decimal import Decimal

# ============== Enums ==============
class VehicleType(str, Enum):
    FOUR_SEATER = "4-seater"
    FIVE_SEATER = "5-seater"
    SEVEN_SEATER = "7-seater"
    EIGHT_SEATER = "8-seater"
    HIACE_10 = "hiace-10"
    CUSTOM = "custom"

class VehicleCategory(str, Enum):
    PRIVATE = "private"
    RENTAL = "rental"

class CostScope(str, Enum):
    ONE_WAY = "one-way"
    ROUND_TRIP = "round-trip"

class Leg(str, Enum):
    OUTBOUND = "outbound"
    RETURN = "return"

class RoundingMode(str, Enum):
    UP = "up"
    DOWN = "down"

class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"

# ============== Participants ==============
class ParticipantBase(SQLModel):
    name: str

class Participant(ParticipantBase):
    id: str
    gender: Optional[Gender] = None

class SeatAssignment(SQLModel):
    name: str
    gender: Optional[Gender] = None
    participant_id: Optional[str] = None  # None for names typed in by hand
    is_manual_entry: bool = False

# ============== Vehicles ==============
class CostDetail(SQLModel):
    amount: Decimal = Field(ge=0)
    scope: CostScope = CostScope.ONE_WAY

class VehicleBase(SQLModel):
    type: VehicleType = VehicleType.FIVE_SEATER
    category: VehicleCategory = VehicleCategory.PRIVATE
    custom_capacity: Optional[int] = None
    rental_cost: Optional[Decimal] = Field(default=None, ge=0)  # round-trip total
    gas_cost: Optional[CostDetail] = None
    highway_cost: Optional[CostDetail] = None

class Vehicle(VehicleBase):
    id: str
    seats: Dict[str, Optional[SeatAssignment]] = Field(default_factory=dict)

    @property
    def is_rental(self) -> bool:
        return self.category == VehicleCategory.RENTAL

    def occupants(self) -> List[SeatAssignment]:
        return [seat for seat in self.seats.values() if seat is not None]

    def driver(self) -> Optional[SeatAssignment]:
        return self.seats.get(driver_seat_key(self))


# Row 0 is always the driver row.
VEHICLE_CONFIGS: Dict[VehicleType, dict] = {
    VehicleType.FOUR_SEATER: {"name": "4-seater", "capacity": 4, "rows": [2, 2]},
    VehicleType.FIVE_SEATER: {"name": "5-seater", "capacity": 5, "rows": [2, 3]},
    VehicleType.SEVEN_SEATER: {"name": "7-seater", "capacity": 7, "rows": [2, 2, 3]},
    VehicleType.EIGHT_SEATER: {"name": "8-seater", "capacity": 8, "rows": [2, 3, 3]},
    VehicleType.HIACE_10: {"name": "HiAce (10 seats)", "capacity": 10, "rows": [2, 3, 2, 3]},
    VehicleType.CUSTOM: {"name": "custom", "capacity": 5, "rows": [2, 3]},
}

def get_vehicle_config(vehicle: VehicleBase) -> dict:
    """
    Returns {name, capacity, rows} for the vehicle. Custom vehicles with a
    custom_capacity of 2 or more get a generated layout: a driver row of 2,
    rows of 4 while at least 4 seats remain, then one row with the rest.
    """
    capacity = vehicle.custom_capacity
    if vehicle.type != VehicleType.CUSTOM or not capacity or capacity < 2:
        return VEHICLE_CONFIGS[vehicle.type]

    rows = [2]
    remaining = capacity - 2
    while remaining > 0:
        width = 4 if remaining >= 4 else remaining
        rows.append(width)
        remaining -= width
    return {"name": f"custom ({capacity} seats)", "capacity": capacity, "rows": rows}

def driver_seat_key(vehicle: VehicleBase) -> str:
    rows = get_vehicle_config(vehicle)["rows"]
    if rows:
        return f"0-{rows[0] - 1}"
    return "0-1"

# ============== Results ==============
class VehicleCollection(SQLModel):
    vehicle_id: str
    driver_name: str
    passenger_count: int
    per_person_cost: Decimal
    collection_amount: Decimal
    actual_cost: Decimal

class Transfer(SQLModel):
    from_name: str  # giver
    to_name: str    # receiver
    amount: Decimal

class DriverBalance(SQLModel):
    driver_name: str
    outbound_cost: Decimal = Decimal("0")
    return_cost: Decimal = Decimal("0")
    total_vehicle_cost: Decimal = Decimal("0")
    collected_amount: Decimal = Decimal("0")
    adjustments: Decimal = Decimal("0")
    final_balance: Decimal = Decimal("0")

class ParticipantCost(SQLModel):
    participant_id: str
    name: str
    is_driver: bool
    outbound_cost: Decimal
    return_cost: Decimal
    total_cost: Decimal

class CalculationResult(SQLModel):
    total_cost: Decimal
    total_participants: int
    per_person_cost: Decimal
    total_collected: Decimal
    total_driver_loss: Decimal
    vehicle_collections: List[VehicleCollection]
    driver_adjustments: List[Transfer]
    driver_final_balances: List[DriverBalance]

class DualCalculationResult(SQLModel):
    round_up: CalculationResult
    round_down: CalculationResult
    recommended_method: RoundingMode

class TripCalculationResult(SQLModel):
    outbound_cost: Decimal
    return_cost: Decimal
    outbound_participants: int
    return_participants: int
    total_cost: Decimal
    all_participants: int
    outbound_per_person: Decimal
    return_per_person: Decimal
    participant_costs: List[ParticipantCost]
    outbound_collections: List[VehicleCollection]
    return_collections: List[VehicleCollection]
    driver_adjustments: List[Transfer]
    driver_final_balances: List[DriverBalance]
    settlement_score: Decimal

class DualTripCalculationResult(SQLModel):
    round_up: TripCalculationResult
    round_down: TripCalculationResult
    recommended_method: RoundingMode
    outbound_adjustment: Decimal
    return_adjustment: Decimal

# ============== Requests ==============
class RoundTripRequest(SQLModel):
    outbound_vehicles: List[Vehicle] = Field(default_factory=list)
    return_vehicles: List[Vehicle] = Field(default_factory=list)
    participants: List[Participant] = Field(default_factory=list)

class SingleTripRequest(SQLModel):
    vehicles: List[Vehicle] = Field(default_factory=list)
    participants: List[Participant] = Field(default_factory=list)

class VehicleCostRequest(SQLModel):
    vehicle: Vehicle
    leg: Leg = Leg.OUTBOUND
    linked_vehicle: Optional[Vehicle] = None
