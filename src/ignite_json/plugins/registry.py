from importlib.metadata import entry_points


def load_fetcher(provider: str):
    for ep in entry_points(group="ignite_json.fetchers"):
        if ep.name == provider:
            return ep.load()
    raise ValueError(f"Unknown template provider: {provider}")
