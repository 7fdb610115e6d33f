from decimal import Decimal

import pytest

from models import Vehicle, SeatAssignment, CostDetail, CostScope, VehicleCategory, VehicleType

PASSENGER_SEATS = ["0-0", "1-0", "1-1", "1-2", "2-0", "2-1", "2-2", "3-0", "3-1", "3-2"]


@pytest.fixture
def make_vehicle():
    """
    Builds a vehicle with the driver in seat 0-1 and passengers filling the
    remaining seats in order. gas/highway are (amount, scope) pairs.
    """
    def _make(vid, driver=None, passengers=(), rental_cost=None, gas=None, highway=None,
              vehicle_type=VehicleType.HIACE_10):
        seats = {}
        if driver is not None:
            seats["0-1"] = SeatAssignment(name=driver)
        for key, name in zip(PASSENGER_SEATS, passengers):
            seats[key] = SeatAssignment(name=name)
        return Vehicle(
            id=vid,
            type=vehicle_type,
            category=VehicleCategory.RENTAL if rental_cost is not None else VehicleCategory.PRIVATE,
            rental_cost=Decimal(rental_cost) if rental_cost is not None else None,
            gas_cost=CostDetail(amount=Decimal(gas[0]), scope=CostScope(gas[1])) if gas else None,
            highway_cost=CostDetail(amount=Decimal(highway[0]), scope=CostScope(highway[1])) if highway else None,
            seats=seats,
        )
    return _make
