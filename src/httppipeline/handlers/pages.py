"""Static HTML pages."""

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder
from ..http.router import Router


def _page(html: str) -> HTTPResponse:
    return ResponseBuilder().html(html).build()


def register_page_routes(router: Router) -> None:

    @router.get("/")
    def home(request: HTTPRequest) -> HTTPResponse:
        return _page("<h1>Hello World!</h1>")

    @router.get("/about")
    def about(request: HTTPRequest) -> HTTPResponse:
        return _page("<h1>About Us</h1>")
