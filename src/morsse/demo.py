"""
Demo application served by ``python -m morsse``.

A tiny controller that exercises the whole core: a session-backed visit
counter, a login that stores userId in the session and remembers the email
in a persistent cookie, a flash cookie shown once, and a logout that
destroys the session.
"""

from .http import Cookie, HTTPRequest, HTTPStatus, Response, Router
from .rendering import StringTemplateRenderer


REMEMBER_ME_MS = 30 * 24 * 60 * 60 * 1000  # 30 days

TEMPLATES = {
    "HomeView": (
        "<!DOCTYPE html><html><head><title>morsse</title></head><body>"
        "<h1>$message</h1>"
        "<p>Visits this session: $visits</p>"
        "<p>$greeting</p>"
        "<form method='post' action='/login'>"
        "<input name='email' value='$email'>"
        "<label><input type='checkbox' name='remember'> Remember me</label>"
        "<button>Log in</button></form>"
        "<a href='/logout'>Log out</a>"
        "</body></html>"
    ),
    "ErrorView": (
        "<!DOCTYPE html><html><head><title>Error</title></head><body>"
        "<h1>$statusCode</h1><p>$message</p>"
        "</body></html>"
    ),
}


class DemoController:
    """Home page, login and logout over an in-memory user list."""

    def __init__(self):
        self._users = {}

    def register_routes(self, router: Router) -> None:
        router.get("/", self.home, name="home")
        router.post("/login", self.login, name="login")
        router.get("/logout", self.logout, name="logout")

    def home(self, request: HTTPRequest, response: Response) -> None:
        session = request.get_session()
        session.data["visits"] = session.data.get("visits", 0) + 1

        greeting = "You are not logged in."
        if "userId" in session.data:
            greeting = f"Logged in as user {session.data['userId']}."

        logged_out = request.find_cookie("logged_out")
        if logged_out:
            greeting = "Logged out successfully."
            response.set_cookie(logged_out.set_expires())

        email = request.find_cookie("email")

        response.send(
            status_code=HTTPStatus.OK,
            message="Homepage!",
            payload={
                "visits": session.data["visits"],
                "greeting": greeting,
                "email": email.value if email else "",
            },
            template="HomeView",
        )

    def login(self, request: HTTPRequest, response: Response) -> None:
        email = request.body.get("email", "").strip()
        if not email:
            response.send(
                status_code=HTTPStatus.BAD_REQUEST,
                message="Email is required.",
                redirect="/",
            )
            return

        user_id = self._users.setdefault(email, len(self._users) + 1)

        session = request.get_session()
        session.data["userId"] = user_id

        remember = request.body.get("remember") == "on"
        response.set_cookie(Cookie("email", email, REMEMBER_ME_MS if remember else 0))
        response.set_cookie(session.cookie)

        response.send(
            status_code=HTTPStatus.OK,
            message="Logged in successfully!",
            payload={"user": {"id": user_id, "email": email}},
        )

    def logout(self, request: HTTPRequest, response: Response) -> None:
        session = request.get_session()
        session.destroy()

        response.set_cookie(session.cookie)
        response.set_cookie(Cookie("logged_out", "true"))

        response.send(
            status_code=HTTPStatus.SEE_OTHER,
            message="Logged out successfully!",
            redirect="/",
        )


def demo_renderer() -> StringTemplateRenderer:
    return StringTemplateRenderer(TEMPLATES)
