from setuptools import setup


setup(
    name='raild',
    version='0.1.0',
    description='Event-driven daemon bridging a model railway hub to user scripts and network clients.',
    url='',
    author='',
    author_email='',
    license='LGPL',
    package_dir={'': 'src'},
    packages=['raild', 'raild.config', 'raild.scripting', 'raild.support', 'raild.uart'],
    package_data={
        'raild.config': ['*.cfg'],
        'raild.scripting': ['prelude.py'],
    },
    python_requires='>=3.7',
    install_requires=[
        'pyserial',
        'configobj',
        'zeroconf',
    ],
    extras_require={
        'test': ['PyHamcrest', 'timeout-decorator', 'pytest'],
    },
    entry_points={
        'console_scripts': ['raild = raild.__main__:main'],
    },
    zip_safe=False
)
