from importlib import import_module

modules = [
    'auth',
    'users',
    'institutions',
    'projects',
    'programmes',
    'investigations',
    'studies',
    'assays',
    'sample_types',
    'samples',
    'strains',
    'publications',
    'nodes',
    'scales',
    'search',
    'external',
    'activity',
]

for m in modules:
    import_module(f'.{m}', __name__)

__all__ = modules
