import asyncio

from conftest import seed

from listing_search.db.models import CarMakeModel
from listing_search.services.search.make_model import correct_make, match_model, resolve_model


def test_match_model_prefers_exact():
    candidates = [("X5 M", False), ("X5 (all)", False), ("X5", True)]
    assert match_model(candidates, "x5") == ("X5 (all)", False)


def test_match_model_prefix_fallback():
    candidates = [("Golf", False), ("Golf Variant", True)]
    assert match_model(candidates, "golf-varian") == ("Golf Variant", True)
    assert match_model(candidates, "Passat") is None


def test_correct_make_and_resolution(session_factory):
    seed(
        session_factory,
        CarMakeModel(id=1, make="Rolls-Royce", model="Ghost", is_variant=False),
        CarMakeModel(id=2, make="BMW", model="X5 (all)", is_variant=False),
        CarMakeModel(id=3, make="BMW", model="X5 xDrive30d", is_variant=True),
    )

    async def run():
        async with session_factory() as session:
            return (
                await correct_make(session, "rolls royce"),
                await correct_make(session, "Land-Rover"),
                await resolve_model(session, "BMW", "X5 (all)"),
                await resolve_model(session, "BMW", "x5-xdrive30d"),
                await resolve_model(session, "BMW", "i-3"),
            )

    rolls, land_rover, all_models, variant, unknown = asyncio.run(run())
    assert rolls == "Rolls-Royce"
    assert land_rover == "Land Rover"
    assert (all_models.model, all_models.is_variant) == ("X5 (all)", False)
    assert (variant.model, variant.is_variant) == ("X5 xDrive30d", True)
    assert (unknown.make, unknown.model, unknown.is_variant) == ("BMW", "i 3", False)
