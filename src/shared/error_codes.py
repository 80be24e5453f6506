# src/shared/error_codes.py
# Central mapping for the error contract.
# Keep keys stable: the staff console and integrations rely on these.
ERROR_CODES = {
    # ─── Validation & Requests ──────────────────────────────────────────────
    "validation_error": {
        "http": 422,
        "message": "Validation failed for one or more fields."
    },
    "invalid_request": {
        "http": 400,
        "message": "Invalid request payload."
    },
    "invalid_signature": {
        "http": 401,
        "message": "Webhook signature missing or invalid."
    },
    "verification_failed": {
        "http": 403,
        "message": "Webhook verification token mismatch."
    },

    # ─── Tenancy ────────────────────────────────────────────────────────────
    "forbidden": {
        "http": 403,
        "message": "Operation not permitted."
    },
    "tenant_not_found": {
        "http": 404,
        "message": "Team not found."
    },
    "tenant_inactive": {
        "http": 403,
        "message": "Team is deactivated; sending is halted."
    },
    "tenant_not_configured": {
        "http": 403,
        "message": "Record has no team and therefore no sending capability."
    },
    "tenant_mismatch": {
        "http": 403,
        "message": "Resource belongs to another team."
    },
    "rate_limited": {
        "http": 429,
        "message": "Team message rate limit exceeded."
    },

    # ─── Conversations & Messages ───────────────────────────────────────────
    "not_found": {
        "http": 404,
        "message": "Resource not found."
    },
    "conversation_not_found": {
        "http": 404,
        "message": "Conversation not found."
    },
    "message_not_found": {
        "http": 404,
        "message": "Message not found."
    },
    "window_closed": {
        "http": 409,
        "message": "24-hour window is closed. Template messages only."
    },
    "conversation_archived": {
        "http": 409,
        "message": "Conversation is archived."
    },
    "message_deleted": {
        "http": 409,
        "message": "Message has been deleted."
    },
    "invalid_reply_target": {
        "http": 422,
        "message": "Reply target must belong to the same conversation."
    },
    "no_driver_assigned": {
        "http": 422,
        "message": "Conversation has no driver assigned."
    },
    "no_recipients": {
        "http": 422,
        "message": "Message has no recipients."
    },

    # ─── Delivery ───────────────────────────────────────────────────────────
    "provider_error": {
        "http": 502,
        "message": "Messaging provider returned an error."
    },
    "provider_transient": {
        "http": 502,
        "message": "Messaging provider temporarily unavailable."
    },
    "provider_permanent": {
        "http": 502,
        "message": "Messaging provider rejected the message."
    },
    "retry_budget_exhausted": {
        "http": 409,
        "message": "Message retry budget exhausted."
    },

    # ─── Server ─────────────────────────────────────────────────────────────
    "conflict": {
        "http": 409,
        "message": "Request conflicts with current state."
    },
    "internal_error": {
        "http": 500,
        "message": "Internal server error."
    },
}
