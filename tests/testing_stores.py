"""
Store kinds registered for the tests
"""
from obsharvest.core.store import StoreFactoryPoint, observation_store


class TextStore:
    def __init__(self, path):
        self.path = path


@observation_store
class TextStoreFactory(StoreFactoryPoint):
    """Files that are not observations"""

    class StoreMeta:
        id = "testTextFile"
        suffix = "txt"
        mime_type = "text/plain"
        observation = False

    def open(self, path, configuration):
        return TextStore(path)


class NoTemplateStore:
    def __init__(self, path):
        self.path = path

    def get_templates(self):
        return []


@observation_store
class NoTemplateStoreFactory(StoreFactoryPoint):
    """Observation files without any observation"""

    class StoreMeta:
        id = "testNoTemplate"
        suffix = "dat"
        observation = True

    def open(self, path, configuration):
        return NoTemplateStore(path)
