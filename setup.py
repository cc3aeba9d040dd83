from setuptools import setup, find_packages

setup(
    name="facerec-deploy",  # face recognition pipeline provisioner
    version="0.1.0",
    packages=find_packages(exclude=["facerec_deploy.tests"]),
    py_modules=["cli"],
    package_data={
        "facerec_deploy": ["templates/*.json"],
    },
    install_requires=[
        "boto3",
        "botocore",
    ],
    extras_require={
        "test": [
            "pytest",
            "moto>=5.0",
        ],
    },
    entry_points={
        'console_scripts': [
            'facerec-deploy=cli:main',
        ],
    },
    description="Idempotent provisioning for an S3 -> Lambda -> S3 face recognition pipeline",
    python_requires='>=3.8',
)
