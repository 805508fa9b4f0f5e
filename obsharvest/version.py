# Managed by setup.py via git tags.  **** DO NOT EDIT ****
__version__='0.1.0'
__release__='0.1.0'
