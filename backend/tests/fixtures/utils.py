import uuid

from _pytest.fixtures import FixtureRequest


def append_to_cls(request: FixtureRequest, func, name=None):
    name = name or func.__name__.strip('_')
    if request.cls:
        setattr(request.cls, name, staticmethod(func))
    return func


def get_id():
    # random positive 31 bit number
    return uuid.uuid1().int >> 97
