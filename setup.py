from setuptools import setup


setup(
    name='fogmod',
    version='0.1.0',
    description='Fog and edge application modeling using SimPy',
    long_description=open('README.rst', 'rb').read().decode('utf-8'),
    license='MIT',
    python_requires='>=3.7',
    install_requires=['simpy', 'pyvcd', 'PyYAML'],
    extras_require={'test': ['pytest']},
    packages=['fogmod'],
    include_package_data=True,
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Environment :: Console',
        'Intended Audience :: Developers',
        'Intended Audience :: Education',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: MIT License',
        'Natural Language :: English',
        'Operating System :: OS Independent',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: Implementation :: CPython',
        'Topic :: Scientific/Engineering',
        'Topic :: System :: Distributed Computing',
    ],
)
