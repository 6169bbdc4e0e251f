import httpx

SECRET = "unit-test-secret"


def json_transport(routes):
    """
    MockTransport answering from a {(method, url): (status, json)} table.
    Every request is recorded on transport.requests.
    """
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        url = str(request.url).split("?", 1)[0]
        key = (request.method, url)
        if key not in routes:
            return httpx.Response(404, json={"message": "not found"})
        status, body = routes[key]
        return httpx.Response(status, json=body)

    transport = httpx.MockTransport(handler)
    transport.requests = requests
    return transport
