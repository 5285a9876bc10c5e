import logging
import re

from django.core.exceptions import RequestDataTooBig
from django.http import JsonResponse

logger = logging.getLogger(__name__)

ACCOUNT_NUMBER_RE = re.compile(r'("account_number"\s*:\s*")(\d*)(\d{4})(")')


def mask_account_numbers(text):
    return ACCOUNT_NUMBER_RE.sub(
        lambda match: match.group(1) + "*" * len(match.group(2)) + match.group(3) + match.group(4),
        text,
    )


class RequestResponseLoggingMiddleware:
    """
    Middleware that logs each request method, path, body,
    and the corresponding response content.

    Bank account numbers in JSON bodies are masked to their last four digits.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request_body = ""
        content_type = request.META.get("CONTENT_TYPE", "")

        # Proof-of-payment uploads
        if "multipart/form-data" in content_type:
            request_body = "<Multipart form data - body not logged>"
        elif request.method in ("POST", "PUT", "PATCH"):
            try:
                request_body = mask_account_numbers(request.body.decode("utf-8"))
            except UnicodeDecodeError:
                request_body = "<Could not decode body>"
            except RequestDataTooBig:
                logger.warning(
                    "API Request rejected: %s %s user=%s body too large",
                    request.method,
                    request.get_full_path(),
                    request.META.get("HTTP_X_USER_ID", "-"),
                )
                return JsonResponse(
                    {"error": "Request body is too large.", "code": "request_too_large"},
                    status=413,
                )

        logger.info(
            "API Request: %s %s user=%s Body: %s",
            request.method,
            request.get_full_path(),
            request.META.get("HTTP_X_USER_ID", "-"),
            request_body,
        )

        response = self.get_response(request)

        response_type = response.get("Content-Type", "")
        if response.streaming:
            response_content = "<Streaming content>"
        elif response_type.startswith(("application/json", "text/")):
            try:
                response_content = mask_account_numbers(response.content.decode("utf-8"))
            except UnicodeDecodeError:
                response_content = "<Could not decode content>"
        else:
            response_content = f"<Content-Type: {response_type}>"

        logger.info(
            "API Response: %s %s Status: %s Content: %s",
            request.method,
            request.get_full_path(),
            response.status_code,
            response_content,
        )
        return response
