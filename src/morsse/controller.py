"""
Controller contract.

A controller groups related handlers and registers them once at startup:

    class AuthController:
        def register_routes(self, router: Router) -> None:
            router.get("/login", self.get_login_form)
            router.post("/login", self.login)
            router.get("/logout", self.logout)

Handlers take (request, response), write through response.send() and
response.set_cookie(), and return nothing.
"""

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from .http.router import Router


class Controller(Protocol):
    def register_routes(self, router: "Router") -> None:
        ...
