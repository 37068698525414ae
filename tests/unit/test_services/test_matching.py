"""Tests for the match-and-notify workflow."""

import asyncio
import pytest
from unpair.models.listing import ListingForm
from unpair.models.request import RequestForm
from unpair.services.matching import (
    is_match,
    parse_listing_form,
    parse_request_form,
    submit_listing,
    submit_request,
)
from unpair.utils.errors import FormValidationError, MatchingError, SupabaseError
from tests.utils.assertions import assert_valid_notification
from tests.utils.factories import create_listing_form_data, create_request_form_data


def listing_form(**overrides) -> ListingForm:
    data = {"foot": "left", "brand": "nike", "model": "Dunk", "size": "10", "condition": "New"}
    data.update(overrides)
    return ListingForm(**data)


def request_form(**overrides) -> RequestForm:
    data = {"foot": "left", "brand": "nike", "model": None, "size": "10"}
    data.update(overrides)
    return RequestForm(**data)


@pytest.mark.unit
def test_is_match_is_exact_on_foot_brand_size():
    assert is_match(listing_form(), request_form())
    assert is_match(listing_form(brand="NIKE"), request_form(brand=" nike "))
    assert is_match(listing_form(model="Dunk"), request_form(model="Air Max"))
    assert not is_match(listing_form(size="10.5"), request_form(size="10"))
    assert not is_match(listing_form(foot="right"), request_form())
    assert not is_match(listing_form(brand="nike sb"), request_form(brand="nike"))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_listing_notifies_matching_requester(fake_supabase, seller_id, buyer_id, sample_image):
    """Listing{left, nike, 10} with an existing Request by U2 gives one notification to U2."""
    await submit_request(buyer_id, request_form())

    result = await submit_listing(seller_id, listing_form(), [sample_image])

    assert len(result.notifications) == 1
    stored = fake_supabase.rows("notifications")
    assert len(stored) == 1
    assert_valid_notification(stored[0])
    assert stored[0]["user_id"] == buyer_id
    assert stored[0]["listing_id"] == result.record.listing_id
    assert stored[0]["request_id"] == fake_supabase.rows("search_requests")[0]["request_id"]
    assert stored[0]["message"] == "A left foot nike dunk (Size 10) is now available!"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_size_mismatch_produces_no_notification(fake_supabase, seller_id, buyer_id, sample_image):
    await submit_request(buyer_id, request_form(size="10"))

    result = await submit_listing(seller_id, listing_form(size="10.5"), [sample_image])

    assert result.notifications == []
    assert fake_supabase.rows("notifications") == []


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("overrides", [{"foot": "right"}, {"brand": "vans"}, {"size": "9"}])
async def test_any_differing_field_prevents_match(fake_supabase, seller_id, buyer_id, sample_image, overrides):
    await submit_listing(seller_id, listing_form(), [sample_image])

    result = await submit_request(buyer_id, request_form(**overrides))

    assert result.notifications == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_request_notifies_matching_seller(fake_supabase, seller_id, buyer_id, sample_image):
    listing = (await submit_listing(seller_id, listing_form(), [sample_image])).record

    result = await submit_request(buyer_id, request_form(brand="Nike", model="dunk"))

    assert len(result.notifications) == 1
    notification = result.notifications[0]
    assert notification.user_id == seller_id
    assert notification.listing_id == listing.listing_id
    assert notification.request_id == result.record.request_id
    assert notification.message == "Someone is looking for a left foot nike dunk (Size 10)!"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_own_posts_never_match(fake_supabase, seller_id, sample_image):
    await submit_request(seller_id, request_form())

    result = await submit_listing(seller_id, listing_form(), [sample_image])

    assert result.notifications == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_one_notification_per_match_without_dedup(fake_supabase, seller_id, buyer_id, sample_image):
    """Each matching record yields its own notification, even for the same user."""
    await submit_request(buyer_id, request_form())
    await submit_request(buyer_id, request_form(model="jordan"))
    await submit_request("someone-else", request_form())

    result = await submit_listing(seller_id, listing_form(), [sample_image])

    assert len(result.notifications) == 3
    assert sorted(n.user_id for n in result.notifications) == sorted([buyer_id, buyer_id, "someone-else"])


@pytest.mark.unit
@pytest.mark.asyncio
async def test_listing_uploads_images(fake_supabase, seller_id, sample_image):
    result = await submit_listing(seller_id, listing_form(), [sample_image, sample_image])

    assert len(result.record.image_urls) == 2
    assert len(set(result.record.image_urls)) == 2
    assert all(f"/sneakers/{seller_id}/" in url for url in result.record.image_urls)
    assert len(fake_supabase.storage.objects) == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_listing_without_image_rejected(fake_supabase, seller_id):
    with pytest.raises(FormValidationError):
        await submit_listing(seller_id, listing_form(), [])

    assert fake_supabase.rows("listings") == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_notification_failure_keeps_listing(fake_supabase, seller_id, buyer_id, sample_image):
    """A failed notify step is reported, but the listing is not rolled back."""
    await submit_request(buyer_id, request_form())
    fake_supabase.fail("notifications", "insert")

    with pytest.raises(MatchingError) as exc_info:
        await submit_listing(seller_id, listing_form(), [sample_image])

    listings = fake_supabase.rows("listings")
    assert len(listings) == 1
    assert exc_info.value.record_id == listings[0]["listing_id"]
    assert exc_info.value.to_alert()["message"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_scan_failure_keeps_request(fake_supabase, buyer_id):
    fake_supabase.fail("listings", "select")

    with pytest.raises(MatchingError):
        await submit_request(buyer_id, request_form())

    assert len(fake_supabase.rows("search_requests")) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_replayed_idempotency_key_does_not_duplicate(fake_supabase, seller_id, buyer_id, sample_image):
    await submit_request(buyer_id, request_form())

    first = await submit_listing(seller_id, listing_form(), [sample_image], idempotency_key="sell-1")
    second = await submit_listing(seller_id, listing_form(), [sample_image], idempotency_key="sell-1")

    assert second.replayed is True
    assert second.record.listing_id == first.record.listing_id
    assert len(fake_supabase.rows("listings")) == 1
    assert len(fake_supabase.rows("notifications")) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_idempotency_key_cannot_cross_record_types(fake_supabase, buyer_id):
    await submit_request(buyer_id, request_form(), idempotency_key="k-1")

    with pytest.raises(FormValidationError):
        await submit_listing(buyer_id, listing_form(), [b"img"], idempotency_key="k-1")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_without_key_resubmission_duplicates(fake_supabase, buyer_id, seller_id, sample_image):
    await submit_listing(seller_id, listing_form(), [sample_image])

    await submit_request(buyer_id, request_form())
    await submit_request(buyer_id, request_form())

    assert len(fake_supabase.rows("search_requests")) == 2
    assert len(fake_supabase.rows("notifications")) == 2


@pytest.mark.unit
def test_parse_listing_form_requires_fields():
    data = create_listing_form_data()
    data["condition"] = ""

    with pytest.raises(FormValidationError) as exc_info:
        parse_listing_form(data)

    assert exc_info.value.alert_title == "Missing fields"


@pytest.mark.unit
def test_parse_request_form_reports_bad_size():
    data = create_request_form_data(size="99")

    with pytest.raises(FormValidationError) as exc_info:
        parse_request_form(data)

    assert "size" in exc_info.value.message


@pytest.mark.unit
def test_parse_request_form_accepts_factory_data():
    form = parse_request_form(create_request_form_data(brand="Vans", size="10"))

    assert form.brand == "vans"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_after_key_write_failure_creates_one_listing(fake_supabase, seller_id, buyer_id, sample_image):
    """Nothing is written when the key cannot be reserved, so the retry starts clean."""
    await submit_request(buyer_id, request_form())
    fake_supabase.fail("submission_keys", "insert")

    with pytest.raises(SupabaseError):
        await submit_listing(seller_id, listing_form(), [sample_image], idempotency_key="sell-k1")

    assert fake_supabase.rows("listings") == []
    assert fake_supabase.storage.objects == {}

    fake_supabase.recover("submission_keys", "insert")
    retried = await submit_listing(seller_id, listing_form(), [sample_image], idempotency_key="sell-k1")
    again = await submit_listing(seller_id, listing_form(), [sample_image], idempotency_key="sell-k1")

    assert retried.replayed is False
    assert len(retried.notifications) == 1
    assert again.replayed is True
    assert again.record.listing_id == retried.record.listing_id
    assert len(fake_supabase.rows("listings")) == 1
    assert len(fake_supabase.rows("notifications")) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_after_listing_write_failure_reuses_reserved_id(fake_supabase, seller_id, buyer_id, sample_image):
    await submit_request(buyer_id, request_form())
    fake_supabase.fail("listings", "insert")

    with pytest.raises(SupabaseError):
        await submit_listing(seller_id, listing_form(), [sample_image], idempotency_key="sell-k2")

    assert fake_supabase.rows("listings") == []
    assert fake_supabase.storage.objects == {}
    reserved_id = fake_supabase.rows("submission_keys")[0]["record_id"]

    fake_supabase.recover("listings", "insert")
    result = await submit_listing(seller_id, listing_form(), [sample_image], idempotency_key="sell-k2")

    assert result.replayed is False
    assert result.record.listing_id == reserved_id
    assert len(result.notifications) == 1
    assert len(fake_supabase.rows("listings")) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_orphan_cleanup_failure_keeps_original_error(fake_supabase, seller_id, sample_image):
    fake_supabase.fail("listings", "insert")
    fake_supabase.storage.fail_removes = True

    with pytest.raises(SupabaseError) as exc_info:
        await submit_listing(seller_id, listing_form(), [sample_image])

    assert "listings" in exc_info.value.message


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_after_request_write_failure(fake_supabase, buyer_id):
    fake_supabase.fail("search_requests", "insert")

    with pytest.raises(SupabaseError):
        await submit_request(buyer_id, request_form(), idempotency_key="look-k1")

    fake_supabase.recover("search_requests", "insert")
    first = await submit_request(buyer_id, request_form(), idempotency_key="look-k1")
    second = await submit_request(buyer_id, request_form(), idempotency_key="look-k1")

    assert first.replayed is False
    assert second.replayed is True
    assert len(fake_supabase.rows("search_requests")) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_parallel_retries_share_one_listing(fake_supabase, seller_id, sample_image):
    results = await asyncio.gather(
        submit_listing(seller_id, listing_form(), [sample_image], idempotency_key="double-tap"),
        submit_listing(seller_id, listing_form(), [sample_image], idempotency_key="double-tap"),
    )

    assert results[0].record.listing_id == results[1].record.listing_id
    assert sorted(r.replayed for r in results) == [False, True]
    assert len(fake_supabase.rows("listings")) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_scan_keeps_only_exact_matches(monkeypatch, seller_id, buyer_id):
    from unpair.services import matching

    async def loose_select(table, filters=None, **kwargs):
        return [
            {"request_id": "r1", "owner_id": buyer_id, "foot": "left", "brand": "nike", "size": "10"},
            {"request_id": "r2", "owner_id": buyer_id, "foot": "left", "brand": "nike", "size": "10.5"},
            {"request_id": "r3", "owner_id": seller_id, "foot": "left", "brand": "nike", "size": "10"},
        ]

    monkeypatch.setattr(matching, "select_rows", loose_select)

    rows = await matching.find_matching_rows("search_requests", listing_form(), seller_id)

    assert [row["request_id"] for row in rows] == ["r1"]
