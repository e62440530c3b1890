"""Tests for the main.py command line front end.

DaxClient is patched out; these tests only check argument wiring, output
and exit codes.
"""

import json
import re
from unittest.mock import MagicMock, patch

import main
from core.errors import AuthenticationError
from core.models import DATE_PATTERN
from core.schemas import DaxResponse


def _run(argv, client=None):
    with patch.object(main, "DaxClient", return_value=client or MagicMock()) as factory:
        code = main.main(argv)
    return code, factory


def test_date_command_prints_header(capsys):
    code, factory = _run(["date"])
    assert code == 0
    assert re.match(DATE_PATTERN, capsys.readouterr().out.strip())
    factory.assert_not_called()


def test_contracts_prints_json(capsys):
    client = MagicMock()
    client.get_contracts.return_value = {"contracts": [{"id": "c1"}]}
    code, _ = _run(["contracts", "--context", "Nightly"], client)

    assert code == 0
    client.get_contracts.assert_called_once_with("Nightly")
    assert json.loads(capsys.readouterr().out) == {"contracts": [{"id": "c1"}]}


def test_card_owners_passes_filters(capsys):
    client = MagicMock()
    client.query_card_owners.return_value = DaxResponse(data={"cardOwners": []}, paging={"totalCount": 0})
    code, _ = _run(["card-owners", "p1", "i1", "--lastname", "Berg", "--limit", "5"], client)

    assert code == 0
    kwargs = client.query_card_owners.call_args.kwargs
    assert kwargs["lastname"] == "Berg"
    assert kwargs["limit"] == 5
    assert kwargs["firstname"] is None
    out = json.loads(capsys.readouterr().out)
    assert out["data"] == {"cardOwners": []}
    assert out["paging"]["totalCount"] == 0


def test_dax_error_exits_nonzero(capsys):
    client = MagicMock()
    client.get_card_owner.side_effect = AuthenticationError("Failed to authenticate with DAX API")
    code, _ = _run(["card-owner", "p1", "i1", "42"], client)

    assert code == 1
    assert "[!] Failed to authenticate" in capsys.readouterr().err


def test_no_command_prints_help(capsys):
    code, _ = _run([])
    assert code == 0
    assert "usage:" in capsys.readouterr().out
