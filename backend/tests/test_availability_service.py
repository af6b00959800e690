"""
Tests for the availability check flow and its input parsing.
"""
import pytest

from exceptions import InvalidInputError, RateLimitExceededError, ResolutionError
from models import Location
from services.availability_service import format_label, parse_location_input, validate_contact


class TestInputParsing:
    def test_email_contact_lowercased(self):
        assert validate_contact("Student@College.EDU") == "student@college.edu"

    def test_phone_contact(self):
        assert validate_contact("+91 98765 43210") == "+91 98765 43210"

    @pytest.mark.parametrize("contact", [None, "", "not-a-contact", "12", 42])
    def test_invalid_contact(self, contact):
        with pytest.raises(InvalidInputError):
            validate_contact(contact)

    def test_coordinate_string(self):
        assert parse_location_input(" 16.505 , 80.645 ") == (Location(lat=16.505, lng=80.645), None)

    def test_coordinate_mapping(self):
        assert parse_location_input({"lat": "16.5", "lng": 80.65}) == (Location(lat=16.5, lng=80.65), None)

    def test_place_name(self):
        assert parse_location_input("  Benz Circle ") == (None, "Benz Circle")

    def test_out_of_range_coordinates(self):
        with pytest.raises(InvalidInputError):
            parse_location_input("123.0, 80.0")

    @pytest.mark.parametrize("location", ["   ", {"lat": 1}, ["16.5", "80.6"]])
    def test_invalid_location(self, location):
        with pytest.raises(InvalidInputError):
            parse_location_input(location)

    def test_format_label(self):
        assert format_label("Benz Circle", Location(lat=16.5, lng=80.65)) == "Benz Circle (16.500000, 80.650000)"


class TestAvailabilityCheck:
    @pytest.mark.asyncio
    async def test_place_name_near_route(self, app_services):
        result = await app_services.availability.check("a@b.co", "Benz Circle", "10.0.0.1")

        assert result.available is True
        assert result.message == "Found 2 bus(es) within 1.5km radius"
        assert {bus.route_id for bus in result.buses} == {"1", "2"}
        assert result.formatted_name == "Benz Circle, Vijayawada (16.505000, 80.645000)"

    @pytest.mark.asyncio
    async def test_coordinates_far_from_every_route(self, app_services):
        result = await app_services.availability.check("a@b.co", "17.0,81.0", "10.0.0.1")

        assert result.available is False
        assert result.buses == []
        assert result.message == (
            "At your location, within 1.5km radius, the college bus is not available. "
            "Your search will be notified to admin."
        )
        assert result.formatted_name == "Governorpet, Vijayawada (17.000000, 81.000000)"

    @pytest.mark.asyncio
    async def test_unknown_place(self, app_services):
        with pytest.raises(ResolutionError):
            await app_services.availability.check("a@b.co", "Atlantis", "10.0.0.1")

    @pytest.mark.asyncio
    async def test_audit_entry_written(self, app_services):
        await app_services.availability.check("A@B.co", "17.0,81.0", "10.0.0.1", requested=True)

        entries = app_services.availability.audit_log.recent()
        assert len(entries) == 1
        assert entries[0]["status"] == "UNAVAILABLE"
        assert entries[0]["requested"] is True
        assert entries[0]["lat"] == 17.0

    @pytest.mark.asyncio
    async def test_contact_limit(self, app_services, settings):
        for i in range(settings.availability_limit_per_contact_per_hour):
            await app_services.availability.check("a@b.co", "17.0,81.0", f"10.0.0.{i}")
        with pytest.raises(RateLimitExceededError):
            await app_services.availability.check("A@B.CO", "17.0,81.0", "10.0.0.99")

    @pytest.mark.asyncio
    async def test_invalid_requests_are_not_counted(self, app_services, settings):
        for _ in range(settings.availability_limit_per_hour + 2):
            with pytest.raises(InvalidInputError):
                await app_services.availability.check("nope", "17.0,81.0", "10.0.0.1")
        result = await app_services.availability.check("a@b.co", "17.0,81.0", "10.0.0.1")
        assert result.available is False
