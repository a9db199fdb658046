# sharevault/crypto/__init__.py
