import os
import random
import logging

import requests
from google.oauth2 import service_account
from google.auth.transport.requests import Request

from brainguard.exceptions import DispatchError
from brainguard.utils.constants import Intensity

logger = logging.getLogger(__name__)


class MessageManager:

    # 강도별 알림 문구 후보 (랜덤 선택)
    TEMPLATES = {
        Intensity.MILD: [
            "Heads up, you've used {app} for {time_today}. Consider a break.",
            "{app} used {time_today} today. Maybe take 10 mins off?",
        ],
        Intensity.NORMAL: [
            "Your brain's fogging. {app} used {time_today}. Maybe switch to something else?",
            "You've spent {time_today} on {app}. Try focusing on a task now.",
        ],
        Intensity.HARSH: [
            "Stop. {app} is eating your day: {time_today} so far. This is ruining your focus.",
            "Enough. {app} is rotting your brain: {time_today} today.",
        ],
        Intensity.CRITICAL: [
            "YOU'RE LETTING APPS ROT YOUR BRAIN. Stop using {app} NOW.",
            "FINAL WARNING: {app} usage = {time_today}. Close the app.",
        ],
    }

    @staticmethod
    def construct_message(intensity: Intensity, app_name: str, time_today: str, rng=random):
        # title / body / severity
        template = rng.choice(MessageManager.TEMPLATES[intensity])
        body = template.format(app=app_name, time_today=time_today)

        if intensity == Intensity.CRITICAL:
            return {"title": "BRAIN ALERT", "body": body, "severity": "high"}
        return {"title": "Brainrot Alert", "body": body, "severity": "normal"}


class LogNotifier:
    """Notifier used when no push credentials are configured."""

    def send(self, title: str, body: str, severity: str) -> None:
        logger.info("[%s] %s: %s", severity, title, body)


class FcmNotifier:
    """Delivers alerts through the FCM HTTP v1 API."""

    FCM_ENDPOINT = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
    SCOPES = ["https://www.googleapis.com/auth/firebase.messaging"]

    def __init__(self, key_path: str, device_token_provider, timeout: float = 10.0):
        self.key_path = key_path
        # meta 등에서 현재 기기 토큰을 읽어오는 callable
        self.device_token_provider = device_token_provider
        self.timeout = timeout

    def _get_access_token(self):
        # service account json 으로 OAuth2 Access Token 발급
        if not os.path.exists(self.key_path):
            raise DispatchError(f"service account key not found at {self.key_path}")

        creds = service_account.Credentials.from_service_account_file(
            self.key_path, scopes=self.SCOPES
        )
        creds.refresh(Request())
        return creds.token, creds.project_id

    def send(self, title: str, body: str, severity: str) -> None:
        fcm_token = self.device_token_provider()
        if not fcm_token:
            raise DispatchError("no device token registered")

        access_token, project_id = self._get_access_token()
        if not access_token or not project_id:
            raise DispatchError("missing FCM credentials")

        message = {
            "message": {
                "token": fcm_token,
                "notification": {
                    "title": title,
                    "body": body,
                },
                "android": {
                    "priority": "high" if severity == "high" else "normal",
                    "notification": {
                        "channel_id": "brainrot_alerts",
                    },
                },
            }
        }

        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

        url = self.FCM_ENDPOINT.format(project_id=project_id)
        response = requests.post(url, headers=headers, json=message, timeout=self.timeout)
        if response.status_code != 200:
            raise DispatchError(f"FCM send failed: {response.status_code} {response.text}")

        logger.info(f"Notification sent to {fcm_token[:10]}...")
