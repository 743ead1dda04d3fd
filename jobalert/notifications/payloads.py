"""Payload construction for job alert digests.

The downstream consumer owns rendering and delivery; this module only fixes
the message contract.
"""

from typing import Any, Dict, Sequence

from jobalert.domain.models import DeliveryMethod, Frequency

JOB_ALERT_TYPE = "JOB_ALERT"


def build_job_alert_payload(
    owner_id: str,
    subscription_id: str,
    job_ids: Sequence[str],
    frequency: Frequency,
    delivery_method: DeliveryMethod,
    keyword: str,
) -> Dict[str, Any]:
    """Build the outbound payload for one digest group.

    Returns:
        Dictionary of the form::

            {
                "type": "JOB_ALERT",
                "recipientId": owner_id,
                "data": {
                    "userId": owner_id,
                    "subscriptionId": ...,
                    "jobIds": [...],
                    "notificationType": "DAILY" | "WEEKLY",
                    "deliveryMethod": "email" | "in-app" | "both",
                    "keyword": ...,
                },
            }

    Raises:
        ValueError: If there are no job ids
    """
    if not job_ids:
        raise ValueError("A job alert digest needs at least one job id")

    return {
        "type": JOB_ALERT_TYPE,
        "recipientId": owner_id,
        "data": {
            "userId": owner_id,
            "subscriptionId": subscription_id,
            "jobIds": list(job_ids),
            "notificationType": Frequency(frequency).value.upper(),
            "deliveryMethod": DeliveryMethod(delivery_method).value,
            "keyword": keyword,
        },
    }
