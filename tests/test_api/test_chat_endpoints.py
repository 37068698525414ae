"""Tests for the conversations, messages and notifications endpoints."""

import pytest

from api.chat.conversations import handler as conversations_handler
from api.chat.messages import handler as messages_handler
from api.notifications import handler as notifications_handler
from api.requests import handler as requests_handler
from api.listings import handler as listings_handler
from tests.utils.assertions import assert_alert, assert_valid_response
from tests.utils.factories import create_listing_form_data, create_profile_row
from tests.utils.helpers import create_vercel_request, encode_image


def open_conversation(token, other_user_id):
    return conversations_handler(create_vercel_request(
        "POST", path="/api/chat/conversations", body={"other_user_id": other_user_id}, token=token
    ))


@pytest.mark.unit
def test_message_seller_requires_login(fake_supabase, seller_id):
    alert = assert_alert(open_conversation(None, seller_id), 401)

    assert alert["message"] == "Please log in to chat with sellers"
    assert fake_supabase.rows("conversations") == []


@pytest.mark.unit
def test_open_conversation_is_idempotent(fake_supabase, logged_in, seller_id, buyer_id):
    first = assert_valid_response(open_conversation(logged_in["buyer"], seller_id))
    second = assert_valid_response(open_conversation(logged_in["seller"], buyer_id))

    assert first["conversation"]["conversation_id"] == second["conversation"]["conversation_id"]
    assert len(fake_supabase.rows("conversations")) == 1


@pytest.mark.unit
def test_chat_with_yourself_rejected(fake_supabase, logged_in, seller_id):
    assert_alert(open_conversation(logged_in["seller"], seller_id), 400)


@pytest.mark.unit
def test_send_and_read_messages(fake_supabase, logged_in, seller_id):
    conversation_id = assert_valid_response(
        open_conversation(logged_in["buyer"], seller_id)
    )["conversation"]["conversation_id"]

    sent = messages_handler(create_vercel_request(
        "POST", path="/api/chat/messages",
        body={"conversation_id": conversation_id, "text": "is the left still around?"},
        token=logged_in["buyer"],
    ))
    assert_valid_response(sent, 201)

    read = assert_valid_response(messages_handler(create_vercel_request(
        "GET", query={"conversation_id": conversation_id}, token=logged_in["seller"]
    )))
    assert [m["text"] for m in read["messages"]] == ["is the left still around?"]


@pytest.mark.unit
def test_messages_need_conversation_id(fake_supabase, logged_in):
    assert_alert(messages_handler(create_vercel_request("GET", token=logged_in["buyer"])), 400)


@pytest.mark.unit
def test_outsider_cannot_read(fake_supabase, logged_in, seller_id, buyer_id):
    fake_supabase.login("lurker-token", "lurker")
    conversation_id = assert_valid_response(
        open_conversation(logged_in["buyer"], seller_id)
    )["conversation"]["conversation_id"]

    response = messages_handler(create_vercel_request(
        "GET", query={"conversation_id": conversation_id}, token="lurker-token"
    ))

    assert_alert(response, 403)


@pytest.mark.unit
def test_inbox_lists_other_user(fake_supabase, logged_in, seller_id, buyer_id):
    fake_supabase.tables["users"] = [create_profile_row(seller_id, "kickflip@example.com")]
    open_conversation(logged_in["buyer"], seller_id)

    inbox = assert_valid_response(conversations_handler(create_vercel_request("GET", token=logged_in["buyer"])))

    assert len(inbox["conversations"]) == 1
    assert inbox["conversations"][0]["other_user"]["name"] == "kickflip"


@pytest.mark.unit
def test_notifications_list_and_mark_read(fake_supabase, logged_in, sample_image):
    requests_handler(create_vercel_request(
        "POST", body={"foot": "left", "brand": "Lakai", "size": "8"}, token=logged_in["buyer"]
    ))
    listing_body = create_listing_form_data(foot="left", brand="lakai", size="8")
    listing_body["images"] = [encode_image(sample_image)]
    listings_handler(create_vercel_request("POST", body=listing_body, token=logged_in["seller"]))

    unread = assert_valid_response(notifications_handler(create_vercel_request(
        "GET", query={"unread": "1"}, token=logged_in["buyer"]
    )))["notifications"]
    assert len(unread) == 1
    assert unread[0]["message"].startswith("A left foot lakai")

    marked = assert_valid_response(notifications_handler(create_vercel_request(
        "PATCH", body={"notification_id": unread[0]["notification_id"]}, token=logged_in["buyer"]
    )))
    assert marked["notification"]["read"] is True

    still_unread = assert_valid_response(notifications_handler(create_vercel_request(
        "GET", query={"unread": "true"}, token=logged_in["buyer"]
    )))["notifications"]
    assert still_unread == []


@pytest.mark.unit
def test_notifications_require_login(fake_supabase):
    assert_alert(notifications_handler(create_vercel_request("GET")), 401)


@pytest.mark.unit
@pytest.mark.parametrize("other_user_id", [42, ["someone"], {"id": "x"}, "   "])
def test_open_conversation_rejects_malformed_user_id(fake_supabase, logged_in, other_user_id):
    alert = assert_alert(open_conversation(logged_in["buyer"], other_user_id), 400)

    assert alert["message"] == "Who do you want to message?"
    assert fake_supabase.rows("conversations") == []


@pytest.mark.unit
def test_send_message_rejects_malformed_conversation_id(fake_supabase, logged_in):
    response = messages_handler(create_vercel_request(
        "POST", body={"conversation_id": 7, "text": "hey"}, token=logged_in["buyer"]
    ))

    assert_alert(response, 400, title="Bad request")
