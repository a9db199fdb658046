# sharevault/cli/__init__.py
