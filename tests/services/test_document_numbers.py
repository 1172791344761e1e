"""Tests for sequential document numbers."""

import pytest

from app.services.document_numbers import format_document_number, next_document_number


def test_format_pads_to_four_digits():
    assert format_document_number("LOAN", 7) == "LOAN-0007"
    assert format_document_number("RET", 12345) == "RET-12345"


@pytest.mark.asyncio
async def test_numbers_increase_per_prefix(test_db):
    assert await next_document_number(test_db, "LOAN") == "LOAN-0001"
    assert await next_document_number(test_db, "LOAN") == "LOAN-0002"
    assert await next_document_number(test_db, "RET") == "RET-0001"
    assert await next_document_number(test_db, "loan") == "LOAN-0003"
    await test_db.commit()


@pytest.mark.asyncio
async def test_rolled_back_number_is_not_consumed(test_db):
    assert await next_document_number(test_db, "VCH") == "VCH-0001"
    await test_db.commit()

    assert await next_document_number(test_db, "VCH") == "VCH-0002"
    await test_db.rollback()

    assert await next_document_number(test_db, "VCH") == "VCH-0002"


@pytest.mark.asyncio
async def test_empty_prefix_is_rejected(test_db):
    with pytest.raises(ValueError):
        await next_document_number(test_db, "  ")
