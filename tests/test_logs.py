import json
import logging
import uuid

import pytest

from fintrack.core.logs import log_security_event
from fintrack.services import ledger
from fintrack.core.errors import NotFound


def test_security_event_is_json(caplog):
    pid = uuid.uuid4()
    with caplog.at_level(logging.INFO, logger="fintrack.security"):
        entry = log_security_event("share.generated", user_id="u-1", property_id=pid, ip=None)

    assert entry["property_id"] == str(pid)
    assert "ip" not in entry
    (record,) = caplog.records
    assert json.loads(record.getMessage().split(" ", 1)[1])["event"] == "share.generated"


def test_unknown_event_rejected():
    with pytest.raises(ValueError):
        log_security_event("share.exploded")


def test_foreign_property_access_is_audited(session, prop, stranger, caplog):
    with caplog.at_level(logging.WARNING, logger="fintrack.security"):
        with pytest.raises(NotFound):
            ledger.get_owned_property(session, prop.id, stranger.id)
    assert any("access.denied" in r.getMessage() for r in caplog.records)
