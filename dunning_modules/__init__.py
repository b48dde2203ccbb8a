"""
Dunning Modules -- business modules built on the kernel and engines.

- ``reminders``: payment reminder scheduling, processing and late fees.
"""
