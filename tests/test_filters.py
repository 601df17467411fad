import pytest
from pydantic import ValidationError

from registry.filters import DEFAULT_LIMIT, CreditQuery
from registry.serials import credit_serial_number, parse_serial_number


class TestCreditQuery:
    def test_defaults(self):
        query = CreditQuery()
        assert query.limit == DEFAULT_LIMIT
        assert query.offset == 0
        assert query.order_by == "created_at DESC"

    @pytest.mark.parametrize("kwargs", [
        {"limit": 0},
        {"limit": 101},
        {"vintage": 1800},
        {"status": "burned"},
        {"sort_by": "owner_id; DROP"},
        {"sort_order": "sideways"},
        {"cursor": "abc"},
    ])
    def test_rejects_unknown_options(self, kwargs):
        with pytest.raises(ValidationError):
            CreditQuery(**kwargs)

    def test_cursor_paging(self):
        query = CreditQuery(limit=10, cursor="20", sort_by="quantity", sort_order="asc")
        assert query.offset == 20
        assert query.order_by == "quantity ASC"
        assert query.next_cursor(10) == "30"
        assert query.next_cursor(4) is None


class TestSerials:
    def test_format(self):
        assert credit_serial_number(2025, 7, 42) == "KRB-2025-007-000042"

    def test_parse(self):
        assert parse_serial_number("KRB-2025-007-000042") == (2025, 7, 42)
        with pytest.raises(ValueError):
            parse_serial_number("KRB-25-7-42")

    def test_sequences_start_at_one(self):
        with pytest.raises(ValueError):
            credit_serial_number(2025, 0, 1)
