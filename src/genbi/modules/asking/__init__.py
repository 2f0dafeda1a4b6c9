"""
GenBI Asking Module.

Threads, thread responses and the asking / adjustment tasks that fill them.
"""
