import pytest
from pydantic import ValidationError

from services.notes_service.src.config import Settings


def test_defaults_load_without_environment():
    s = Settings()
    assert s.transcript_window == 3
    assert s.transcript_char_budget == 8000
    assert s.display_timezone == "UTC"

@pytest.mark.parametrize("zone", ["UTC", "utc", "America/New_York", "Europe/Berlin"])
def test_known_time_zones_are_accepted(zone):
    assert Settings(display_timezone=zone).display_timezone == zone

@pytest.mark.parametrize("zone", ["Mars/Olympus_Mons", "Not A Zone", "../etc/passwd"])
def test_unknown_time_zone_is_rejected_at_startup(zone):
    with pytest.raises(ValidationError):
        Settings(display_timezone=zone)

def test_policy_values_must_be_positive():
    with pytest.raises(ValidationError):
        Settings(transcript_window=0)
    with pytest.raises(ValidationError):
        Settings(soap_timeout_s=0)
