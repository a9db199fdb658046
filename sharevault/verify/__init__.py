# sharevault/verify/__init__.py
