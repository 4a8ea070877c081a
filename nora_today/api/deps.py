from fastapi import Request

from nora_today.runtime.container import Container


def get_container(request: Request) -> Container:
    return request.app.state.container
