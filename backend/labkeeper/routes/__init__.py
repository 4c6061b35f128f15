from importlib import import_module

modules = [
    'auth',
    'labs',
    'catalog',
    'lab_inventory',
    'lab_members',
    'lab_admissions',
    'audit',
]

for m in modules:
    import_module(f'.{m}', __name__)

__all__ = modules
