import setuptools


package = dict(
    name             = 'fixcompletion',
    version          = '0.1.0',
    author           = 'Dan Gittik',
    author_email     = 'dan.gittik@gmail.com',
    description      = 'Context-sensitive tab completion for a source rewriting tool\'s command line.',
    license          = 'MIT',
    py_modules       = ['fixcompletion'],
    python_requires  = '>=3.7',
    install_requires = [
    ],
    extras_require   = {
        'test': [
            'pytest',
        ],
    },
)


if __name__ == '__main__':
	setuptools.setup(**package)
