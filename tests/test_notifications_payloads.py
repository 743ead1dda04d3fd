"""Unit tests for job alert payload building."""

import pytest

from jobalert.domain.models import DeliveryMethod, Frequency
from jobalert.notifications.payloads import JOB_ALERT_TYPE, build_job_alert_payload


def test_payload_shape():
    payload = build_job_alert_payload(
        owner_id="owner-1",
        subscription_id="sub-1",
        job_ids=("job-1", "job-2"),
        frequency=Frequency.DAILY,
        delivery_method=DeliveryMethod.BOTH,
        keyword="javascript",
    )

    assert payload == {
        "type": JOB_ALERT_TYPE,
        "recipientId": "owner-1",
        "data": {
            "userId": "owner-1",
            "subscriptionId": "sub-1",
            "jobIds": ["job-1", "job-2"],
            "notificationType": "DAILY",
            "deliveryMethod": "both",
            "keyword": "javascript",
        },
    }


def test_weekly_from_plain_values():
    payload = build_job_alert_payload(
        "owner-1", "sub-1", ["job-1"], "weekly", "in-app", "react"
    )

    assert payload["data"]["notificationType"] == "WEEKLY"
    assert payload["data"]["deliveryMethod"] == "in-app"


def test_empty_job_ids_rejected():
    with pytest.raises(ValueError, match="at least one job"):
        build_job_alert_payload(
            "owner-1", "sub-1", [], Frequency.DAILY, DeliveryMethod.EMAIL, "react"
        )
