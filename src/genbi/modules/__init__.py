"""GenBI Modules."""
