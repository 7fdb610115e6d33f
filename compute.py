import logging
from typing import List, Dict, Tuple, Optional, NamedTuple, Sequence
from decimal import Decimal, ROUND_HALF_UP, ROUND_CEILING, ROUND_FLOOR

from models import (
    CostDetail, CostScope, Leg, RoundingMode, Participant, Vehicle,
    VehicleCollection, Transfer, DriverBalance, ParticipantCost,
    CalculationResult, DualCalculationResult,
    TripCalculationResult, DualTripCalculationResult,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
DENOMINATION = Decimal("100")
ADJUSTMENT_STEP = Decimal("100")
UNSET_DRIVER = "unset"

def to_dec(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))

def round_to_unit(d, unit=DENOMINATION, rounding=ROUND_HALF_UP) -> Decimal:
    """Round d to a whole multiple of unit (half-up unless told otherwise)."""
    unit = to_dec(unit)
    return (to_dec(d) / unit).to_integral_value(rounding=rounding) * unit

# ============== Cost Aggregator ==============
def _amount(cost: Optional[CostDetail]) -> Decimal:
    return to_dec(cost.amount) if cost is not None else ZERO

def _is_round_trip(cost: Optional[CostDetail]) -> bool:
    return cost is not None and cost.scope == CostScope.ROUND_TRIP

def _rental(vehicle: Vehicle) -> Decimal:
    if vehicle.is_rental and vehicle.rental_cost:
        return to_dec(vehicle.rental_cost)
    return ZERO

def vehicle_leg_cost(vehicle: Vehicle, leg: Leg, linked_vehicle: Optional[Vehicle] = None) -> Decimal:
    """
    Actual cost of one vehicle on one leg of a round trip.

    Outbound: half the rental (rental_cost is the round-trip total) plus the
    full gas and highway amounts.
    Return: half the rental when the linked outbound vehicle is a rental too,
    otherwise the full rental (a return-only hire). Gas and highway are
    dropped when the linked outbound vehicle already declared that cost as
    round-trip; the return vehicle's own scope is not consulted here.
    """
    if leg == Leg.OUTBOUND:
        return _rental(vehicle) / 2 + _amount(vehicle.gas_cost) + _amount(vehicle.highway_cost)

    linked_rental = linked_vehicle is not None and linked_vehicle.is_rental
    gas_counted = linked_vehicle is not None and _is_round_trip(linked_vehicle.gas_cost)
    highway_counted = linked_vehicle is not None and _is_round_trip(linked_vehicle.highway_cost)

    total = _rental(vehicle) / 2 if linked_rental else _rental(vehicle)
    if not gas_counted:
        total += _amount(vehicle.gas_cost)
    if not highway_counted:
        total += _amount(vehicle.highway_cost)
    return total

def single_trip_vehicle_cost(vehicle: Vehicle) -> Decimal:
    return _rental(vehicle) + _amount(vehicle.gas_cost) + _amount(vehicle.highway_cost)

def _linked(outbound_vehicles: Sequence[Vehicle], index: int) -> Optional[Vehicle]:
    # linkage is positional
    if index < len(outbound_vehicles):
        return outbound_vehicles[index]
    return None

def leg_costs(outbound_vehicles: Sequence[Vehicle], return_vehicles: Sequence[Vehicle]) -> Tuple[List[Decimal], List[Decimal]]:
    outbound = [vehicle_leg_cost(v, Leg.OUTBOUND) for v in outbound_vehicles]
    inbound = [
        vehicle_leg_cost(v, Leg.RETURN, _linked(outbound_vehicles, i))
        for i, v in enumerate(return_vehicles)
    ]
    return outbound, inbound

# ============== Participation Classifier ==============
class LegParticipation(NamedTuple):
    payer_count: int
    occupant_names: List[str]
    driver_names: List[str]

def classify(vehicles: Sequence[Vehicle], leg: Leg = Leg.OUTBOUND) -> LegParticipation:
    """
    Distinct occupants and drivers of one leg, keyed by name in first-seen
    order. Drivers never pay, even when they also sit in another vehicle.
    """
    occupants: Dict[str, None] = {}
    drivers: Dict[str, None] = {}
    for vehicle in vehicles:
        driver = vehicle.driver()
        if driver is not None:
            drivers[driver.name] = None
        for seat in vehicle.occupants():
            occupants[seat.name] = None

    payer_count = len(occupants) - sum(1 for name in drivers if name in occupants)
    logger.debug("%s leg: %d occupants, %d drivers, %d payers",
                 leg.value, len(occupants), len(drivers), payer_count)
    return LegParticipation(payer_count, list(occupants), list(drivers))

def count_all_participants(outbound: LegParticipation, inbound: LegParticipation) -> int:
    names = set(outbound.occupant_names) | set(inbound.occupant_names)
    drivers = set(outbound.driver_names) | set(inbound.driver_names)
    return len(names) - len(drivers)

# ============== Fee Calculator ==============
def fee_per_person(total_cost, payer_count: int, rounding_mode: RoundingMode,
                   adjustment=ZERO, unit=DENOMINATION) -> Decimal:
    raw = to_dec(total_cost) / payer_count if payer_count > 0 else ZERO
    rounding = ROUND_CEILING if rounding_mode == RoundingMode.UP else ROUND_FLOOR
    return round_to_unit(raw, unit, rounding) + to_dec(adjustment)

def passenger_count(vehicle: Vehicle) -> int:
    count = len(vehicle.occupants())
    return count - 1 if vehicle.driver() is not None else count

def driver_name(vehicle: Vehicle) -> str:
    driver = vehicle.driver()
    if driver is not None and driver.name:
        return driver.name
    return UNSET_DRIVER

def collect(vehicles: Sequence[Vehicle], costs: Sequence[Decimal], fee: Decimal) -> List[VehicleCollection]:
    collections = []
    for vehicle, cost in zip(vehicles, costs):
        passengers = passenger_count(vehicle)
        collections.append(VehicleCollection(
            vehicle_id=vehicle.id,
            driver_name=driver_name(vehicle),
            passenger_count=passengers,
            per_person_cost=fee,
            collection_amount=fee * passengers,
            actual_cost=cost,
        ))
    return collections

# ============== Settlement Engine ==============
def net_greedy(deficits: List[Tuple[str, Decimal]], surpluses: List[Tuple[str, Decimal]],
               unit=DENOMINATION) -> List[Tuple[str, str, Decimal]]:
    """
    deficits: [(name, amount owed to them)], surpluses: [(name, amount they hold)]
    Walks both lists in the order given (never sorted) and returns
    (giver, receiver, amount) with each amount rounded to unit. Zero-rounded
    transfers are dropped but the unrounded residue keeps the walk going.
    """
    needs = [[name, to_dec(amt)] for name, amt in deficits]
    extras = [[name, to_dec(amt)] for name, amt in surpluses]

    i = j = 0
    transfers = []
    while i < len(extras) and j < len(needs):
        giver, receiver = extras[i], needs[j]
        amount = min(giver[1], receiver[1])
        rounded = round_to_unit(amount, unit)
        if rounded > ZERO:
            transfers.append((giver[0], receiver[0], rounded))
        giver[1] -= amount
        receiver[1] -= amount
        if giver[1] == 0:
            i += 1
        if receiver[1] == 0:
            j += 1
    return transfers

def _new_entry() -> Dict[str, Decimal]:
    return {"outbound": ZERO, "return": ZERO, "collected": ZERO, "difference": ZERO, "adjustments": ZERO}

def _balance(entry: Dict[str, Decimal]) -> Decimal:
    return entry["collected"] - (entry["outbound"] + entry["return"]) + entry["adjustments"]

def _apply(ledger: Dict[str, Dict[str, Decimal]], transfers: List[Tuple[str, str, Decimal]]) -> None:
    for giver, receiver, amount in transfers:
        ledger[giver]["adjustments"] -= amount
        ledger[receiver]["adjustments"] += amount

def _split(amounts: List[Tuple[str, Decimal]]) -> Tuple[List[Tuple[str, Decimal]], List[Tuple[str, Decimal]]]:
    """Split signed amounts into (positive, |negative|) keeping order."""
    positive = [(name, amt) for name, amt in amounts if amt > 0]
    negative = [(name, -amt) for name, amt in amounts if amt < 0]
    return positive, negative

def equalization_targets(balances: List[Tuple[str, Decimal]], unit=DENOMINATION) -> List[Tuple[str, Decimal]]:
    """
    Spread the total balance evenly over the drivers in whole units. The
    first drivers in the list get one extra unit each until the targets add
    back up to the total.
    """
    unit = to_dec(unit)
    count = len(balances)
    total = sum((amt for _, amt in balances), ZERO)
    base = round_to_unit(total / count, unit, ROUND_FLOOR)
    extra = int(((total - base * count) / unit).to_integral_value(rounding=ROUND_HALF_UP))
    return [(name, base + unit if index < extra else base) for index, (name, _) in enumerate(balances)]

def settle(outbound_collections: Sequence[VehicleCollection],
           return_collections: Sequence[VehicleCollection] = (),
           unit=DENOMINATION) -> Tuple[List[Transfer], List[DriverBalance]]:
    """
    Two netting passes over the drivers, in the order they first appear
    (outbound collections, then return).

    Pass 1 nets each driver's summed (actual cost - collected) against the
    others. Pass 2 moves every driver towards a common target balance to
    absorb what fee rounding left over. Both passes always run.
    """
    ledger: Dict[str, Dict[str, Decimal]] = {}
    for leg, collections in ((Leg.OUTBOUND, outbound_collections), (Leg.RETURN, return_collections)):
        for vc in collections:
            entry = ledger.setdefault(vc.driver_name, _new_entry())
            entry[leg.value] += vc.actual_cost
            entry["collected"] += vc.collection_amount
            entry["difference"] += vc.actual_cost - vc.collection_amount

    # pass 1: per-vehicle reconciliation
    deficits, surpluses = _split([(name, e["difference"]) for name, e in ledger.items()])
    transfers = net_greedy(deficits, surpluses, unit)
    _apply(ledger, transfers)
    logger.debug("reconciliation pass: %d transfers", len(transfers))

    # pass 2: balance equalization
    if ledger:
        current = [(name, _balance(e)) for name, e in ledger.items()]
        targets = equalization_targets(current, unit)
        diffs = [(name, target - balance) for (name, target), (_, balance) in zip(targets, current)]
        needs, extras = _split(diffs)
        equalizing = net_greedy(needs, extras, unit)
        _apply(ledger, equalizing)
        logger.debug("equalization pass: %d transfers", len(equalizing))
        transfers.extend(equalizing)

    balances = [
        DriverBalance(
            driver_name=name,
            outbound_cost=e["outbound"],
            return_cost=e["return"],
            total_vehicle_cost=e["outbound"] + e["return"],
            collected_amount=e["collected"],
            adjustments=e["adjustments"],
            final_balance=_balance(e),
        )
        for name, e in ledger.items()
    ]
    return [Transfer(from_name=g, to_name=r, amount=a) for g, r, a in transfers], balances

def settlement_score(balances: Sequence[DriverBalance]) -> Decimal:
    return sum((abs(b.final_balance) for b in balances), ZERO)

def transfer_volume(transfers: Sequence[Transfer]) -> Decimal:
    return sum((t.amount for t in transfers), ZERO)

# ============== Round trip ==============
def participant_costs(participants: Sequence[Participant], outbound: LegParticipation,
                      inbound: LegParticipation, outbound_fee: Decimal, return_fee: Decimal) -> List[ParticipantCost]:
    """
    What each seated person pays per leg. Driving is leg-local: someone who
    drives out and rides back pays the return fee only.
    """
    ids: Dict[str, str] = {}
    for p in participants:
        ids.setdefault(p.name, p.id)  # first participant with the name wins

    rows = []
    for name in dict.fromkeys(outbound.occupant_names + inbound.occupant_names):
        out_cost = outbound_fee if name in outbound.occupant_names and name not in outbound.driver_names else ZERO
        ret_cost = return_fee if name in inbound.occupant_names and name not in inbound.driver_names else ZERO
        rows.append(ParticipantCost(
            participant_id=ids.get(name, name),
            name=name,
            is_driver=name in outbound.driver_names or name in inbound.driver_names,
            outbound_cost=out_cost,
            return_cost=ret_cost,
            total_cost=out_cost + ret_cost,
        ))
    return rows

def calculate_trip_pattern(outbound_vehicles: Sequence[Vehicle], return_vehicles: Sequence[Vehicle],
                           participants: Sequence[Participant], rounding_mode: RoundingMode,
                           outbound_adjustment=ZERO, return_adjustment=ZERO,
                           unit=DENOMINATION) -> TripCalculationResult:
    outbound_costs, return_costs = leg_costs(outbound_vehicles, return_vehicles)
    outbound_cost = sum(outbound_costs, ZERO)
    return_cost = sum(return_costs, ZERO)

    outbound = classify(outbound_vehicles, Leg.OUTBOUND)
    inbound = classify(return_vehicles, Leg.RETURN)

    outbound_fee = fee_per_person(outbound_cost, outbound.payer_count, rounding_mode, outbound_adjustment, unit)
    return_fee = fee_per_person(return_cost, inbound.payer_count, rounding_mode, return_adjustment, unit)

    outbound_collections = collect(outbound_vehicles, outbound_costs, outbound_fee)
    return_collections = collect(return_vehicles, return_costs, return_fee)
    transfers, balances = settle(outbound_collections, return_collections, unit)

    return TripCalculationResult(
        outbound_cost=outbound_cost,
        return_cost=return_cost,
        outbound_participants=outbound.payer_count,
        return_participants=inbound.payer_count,
        total_cost=outbound_cost + return_cost,
        all_participants=count_all_participants(outbound, inbound),
        outbound_per_person=outbound_fee,
        return_per_person=return_fee,
        participant_costs=participant_costs(participants, outbound, inbound, outbound_fee, return_fee),
        outbound_collections=outbound_collections,
        return_collections=return_collections,
        driver_adjustments=transfers,
        driver_final_balances=balances,
        settlement_score=settlement_score(balances),
    )

def adjustment_patterns(has_outbound: bool, has_return: bool, step=ADJUSTMENT_STEP) -> List[Tuple[Decimal, Decimal]]:
    if not (has_outbound and has_return):
        return [(ZERO, ZERO)]
    step = to_dec(step)
    return [(ZERO, ZERO), (step, ZERO), (-step, ZERO), (ZERO, step), (ZERO, -step)]

def calculate_round_trip_costs(outbound_vehicles: Sequence[Vehicle], return_vehicles: Sequence[Vehicle],
                               participants: Sequence[Participant], unit=DENOMINATION,
                               step=ADJUSTMENT_STEP) -> DualTripCalculationResult:
    """
    Try both rounding modes with small per-leg fee nudges and keep the
    variant whose drivers end up closest to zero (sum of |final balance|).
    Ties keep the earlier variant: round-up first, then the pattern order.
    The mode that loses is recomputed without any nudge for comparison.
    """
    patterns = adjustment_patterns(bool(outbound_vehicles), bool(return_vehicles), step)
    variants = []
    for mode in (RoundingMode.UP, RoundingMode.DOWN):
        for out_adj, ret_adj in patterns:
            result = calculate_trip_pattern(outbound_vehicles, return_vehicles, participants,
                                            mode, out_adj, ret_adj, unit)
            logger.debug("variant %s (%s, %s): score %s", mode.value, out_adj, ret_adj, result.settlement_score)
            variants.append((mode, out_adj, ret_adj, result))

    mode, out_adj, ret_adj, chosen = min(variants, key=lambda v: v[3].settlement_score)
    logger.info("chose round-%s with adjustments (%s, %s), score %s",
                mode.value, out_adj, ret_adj, chosen.settlement_score)

    def _for(m: RoundingMode) -> TripCalculationResult:
        if m == mode:
            return chosen
        return calculate_trip_pattern(outbound_vehicles, return_vehicles, participants, m, ZERO, ZERO, unit)

    return DualTripCalculationResult(
        round_up=_for(RoundingMode.UP),
        round_down=_for(RoundingMode.DOWN),
        recommended_method=mode,
        outbound_adjustment=out_adj,
        return_adjustment=ret_adj,
    )

# ============== Single trip ==============
def calculate_single_pattern(vehicles: Sequence[Vehicle], rounding_mode: RoundingMode,
                             unit=DENOMINATION) -> CalculationResult:
    costs = [single_trip_vehicle_cost(v) for v in vehicles]
    total_cost = sum(costs, ZERO)
    participation = classify(vehicles, Leg.OUTBOUND)
    fee = fee_per_person(total_cost, participation.payer_count, rounding_mode, ZERO, unit)

    collections = collect(vehicles, costs, fee)
    transfers, balances = settle(collections, (), unit)
    total_collected = sum((vc.collection_amount for vc in collections), ZERO)

    return CalculationResult(
        total_cost=total_cost,
        total_participants=participation.payer_count,
        per_person_cost=fee,
        total_collected=total_collected,
        total_driver_loss=total_collected - total_cost,
        vehicle_collections=collections,
        driver_adjustments=transfers,
        driver_final_balances=balances,
    )

def calculate_transportation_costs(vehicles: Sequence[Vehicle], unit=DENOMINATION) -> DualCalculationResult:
    """One-way trip: both rounding modes, recommend the one moving less money between drivers."""
    round_up = calculate_single_pattern(vehicles, RoundingMode.UP, unit)
    round_down = calculate_single_pattern(vehicles, RoundingMode.DOWN, unit)
    up_volume = transfer_volume(round_up.driver_adjustments)
    down_volume = transfer_volume(round_down.driver_adjustments)
    return DualCalculationResult(
        round_up=round_up,
        round_down=round_down,
        recommended_method=RoundingMode.UP if up_volume <= down_volume else RoundingMode.DOWN,
    )
