[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "blogfeed"
version = "0.1.0"
description = "A small blog feed service: posts, authors and likes over a JSON HTTP API"
requires-python = ">=3.10"
keywords = ["blog", "feed", "posts", "likes", "flask", "redis", "sqlalchemy"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Framework :: Flask",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content :: News/Diary",
]
dependencies = [
    "flask>=2.2",
    "sqlalchemy>=2.0",
    "redis>=4.5",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[project.scripts]
blogfeed = "blogfeed.api:main"

[tool.hatch.build.targets.wheel]
packages = ["blogfeed"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
