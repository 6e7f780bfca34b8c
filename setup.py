# setup.py
from setuptools import setup, find_packages

install_requires = [
    "tqdm",
    "setproctitle>=1.2",
    "psutil",
    "sortedcontainers",
    "lxml",
    "biopython",
]

extras_require = {
    "test": ["pytest"],
}

setup(
    name="dms-toolrunner",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">=3.9",
    install_requires=install_requires,
    extras_require=extras_require,
    entry_points={
        "console_scripts": [
            "dms-toolrunner=dms_toolrunner.__main__:main",
        ],
    },
)
