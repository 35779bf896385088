import setuptools

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setuptools.setup(
    name='kentMixtureModel',
    version='0.0.0',
    description='python/pyTorch code for minimum message length inference of Kent (FB5) mixture models',
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    package_dir={"": "src"},
    packages=setuptools.find_packages(where="src"),
    python_requires=">=3.8",
    license='MIT',
    install_requires=['numpy', 'torch', 'scipy'],
    extras_require={'test': ['pytest']},
)
