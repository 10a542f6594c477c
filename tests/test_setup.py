"""Test that the project setup is working correctly."""

import tradeup_engine


def test_version() -> None:
    """Test that version is defined."""
    assert tradeup_engine.__version__ == "0.1.0"


def test_import_modules() -> None:
    """Test that all submodules can be imported."""
    from tradeup_engine import intake
    from tradeup_engine import kpi
    from tradeup_engine import policy
    from tradeup_engine import scoring
    from tradeup_engine import storage
    from tradeup_engine import tasks
    from tradeup_engine import valuation
    from tradeup_engine import workflow

    # Just verify imports work
    assert intake is not None
    assert kpi is not None
    assert policy is not None
    assert scoring is not None
    assert storage is not None
    assert tasks is not None
    assert valuation is not None
    assert workflow is not None
