import logging

import requests

from reachout.constants import (EVENT_CANDIDATE_DECLINED, EVENT_CANDIDATE_EXPIRED,
                                EVENT_MATCH_CANCELLED, EVENT_MATCH_EXPIRED,
                                EVENT_MATCH_FULFILLED)

logger = logging.getLogger(__name__)

MESSAGES = {
    EVENT_MATCH_FULFILLED: 'A donor has accepted blood request {request_id}.',
    EVENT_CANDIDATE_DECLINED: 'Donor {donor_id} declined blood request {request_id}.',
    EVENT_CANDIDATE_EXPIRED: 'Blood request {request_id} is no longer waiting for your response.',
    EVENT_MATCH_EXPIRED: 'No donor accepted blood request {request_id}. We will keep searching.',
    EVENT_MATCH_CANCELLED: 'Blood request {request_id} was cancelled.',
}


class WebhookNotifier:
    """Posts match events to the notification service.

    Delivery is fire-and-forget: it runs after the transition has committed,
    and a failed post is logged, never raised back into the engine.
    """

    def __init__(self, url=None, timeout=5):
        self.url = url
        self.timeout = timeout

    def notify(self, event, **payload):
        body = dict(payload, event=event)
        body['message'] = MESSAGES.get(event, '').format(**payload)

        if not self.url:
            logger.info('Notification %s (no webhook configured): %s', event, body['message'])
            return
        try:
            response = requests.post(self.url, json=body, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning('Error sending %s notification for match %s: %s',
                           event, payload.get('match_id'), e)
