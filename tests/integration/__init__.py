"""
Integration tests.

Exercise the Dispatcher end to end over in-process FakeBackends:
- Retries, health degradation and recovery
- Concurrency cap under a burst of searches
"""
