from setuptools import setup

with open("requirements.txt") as f:
    required = f.read().splitlines()

exec(open("pycircperm/version.py").read())
setup(
    name="pycircperm",
    version=__version__,  # noqa: F821
    description="Circular statistics and permutation testing for grouped orientation data",
    python_requires=">=3.9",
    install_requires=required,
    extras_require={"test": ["pytest"]},
    packages=["pycircperm"],
)
