from setuptools import setup, find_namespace_packages

import django_gl

PACKAGES = find_namespace_packages(include=["django_gl", "django_gl.*"])

setup(
    extras_require={
        "dev": ["faker>=15.3.3", "pytest", "pytest-django"],
        "postgres": ["psycopg[binary]>=3.1"]
    },
    dependency_links=[],
    name="django-gl",
    version=django_gl.__version__,
    packages=PACKAGES,
    license=django_gl.__license__,
    keywords="django, finance, bookkeeping, accounting, general ledger, journal, batch posting, double entry",
    author=django_gl.__author__,
    description="General Ledger journal & batch posting engine for Django. Balanced journals, atomic batches, "
    + "period locks, reversals",
    include_package_data=True,
    install_requires=[
        "django>=5.1",
        "python-dateutil>=2.8.2",
    ],
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: Implementation :: CPython",
        "Topic :: Office/Business :: Financial :: Accounting",
        "Development Status :: 3 - Alpha",
        "Framework :: Django :: 5.1",
        "Intended Audience :: Financial and Insurance Industry",
        "License :: OSI Approved :: GNU General Public License v3 or later (GPLv3+)",
    ],
)
