import logging

logger = logging.getLogger(__name__)

LOGGED_CONTENT_TYPES = ("application/json", "text/")
MAX_LOGGED_BODY = 2000


class RequestResponseLoggingMiddleware:
    """
    Logs method, path, caller and body of every API request,
    and the status and content of the corresponding response.

    Requests outside ``/api/`` (admin, static files) are passed through untouched.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if not request.path.startswith("/api/"):
            return self.get_response(request)

        request_body = ""
        if request.method in ("POST", "PUT", "PATCH") and request.body:
            # Bodies are small JSON payloads; binary input is not expected here
            request_body = request.body[:MAX_LOGGED_BODY].decode("utf-8", errors="replace")

        logger.info(
            "API Request: %s %s Body: %s",
            request.method,
            request.get_full_path(),
            request_body,
        )

        response = self.get_response(request)

        response_type = response.get("Content-Type", "")
        if response.streaming:
            response_content = "<Streaming content>"
        elif response_type.startswith(LOGGED_CONTENT_TYPES):
            response_content = response.content[:MAX_LOGGED_BODY].decode(
                "utf-8", errors="replace"
            )
        else:
            response_content = f"<Content-Type: {response_type}>"

        user = getattr(request, "user", None)
        logger.info(
            "API Response: %s %s User: %s Status: %d Content: %s",
            request.method,
            request.get_full_path(),
            user.pk if user is not None and user.is_authenticated else "-",
            response.status_code,
            response_content,
        )
        return response
