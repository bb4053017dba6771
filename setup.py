import setuptools

VERSION='0.1.0'

setuptools.setup(name='pyfat16',
                 version=VERSION,
                 description='Pure python read-only FAT16 driver',
                 author='Chris Lalancette',
                 author_email='clalancette@gmail.com',
                 license='LGPLv2',
                 classifiers=['Development Status :: 4 - Beta',
                              'Intended Audience :: Developers',
                              'License :: OSI Approved :: GNU Lesser General Public License v2 (LGPLv2)',
                              'Natural Language :: English',
                              'Programming Language :: Python :: 3',
                 ],
                 keywords='FAT FAT16',
                 python_requires='>=3.6',
                 py_modules=['pyfat16'],
                 extras_require={'test': ['pytest']},
)
