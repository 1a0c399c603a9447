# utils/webhook.py
import requests


def post_json(url: str, payload: dict, api_key: str | None = None, timeout: int = 10) -> None:
     """POST a JSON document, raising on any non-2xx response."""
     headers = {"Content-Type": "application/json"}
     if api_key:
          headers["api-key"] = api_key

     response = requests.post(url, headers=headers, json=payload, timeout=timeout)
     if response.status_code not in (200, 201, 202, 204):
          raise Exception(f"Webhook error {response.status_code}: {response.text}")
