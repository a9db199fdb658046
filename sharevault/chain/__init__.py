# sharevault/chain/__init__.py
