# sharevault/core/__init__.py
