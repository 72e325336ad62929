"""Site Payroll package.

Labour payroll for construction sites, organised by feature modules
(attendance, payroll, employees, tracking, recalculation) with a thin Flask
controller layer over service/repository layers.
"""
