from setuptools import setup

setup(
    url='none',
    author='Matt Haggard',
    author_email='haggardii@gmail.com',
    name='txcaslink',
    version='0.1',
    description='CAS client and server module for Twisted web applications.',
    packages=[
        'txcaslink', 'txcaslink.test', 'twisted.plugins',
    ],
    package_data={
        'txcaslink.test': ['test_jinja2_templates/*.jinja2'],
    },
    install_requires=[
        'klein',
        'treq',
        'Twisted[tls]>=16.0.0',
        'zope.interface',
        'Jinja2',
        'python-dateutil',
    ],
    extras_require={
        'test': ['mock'],
    },
)
