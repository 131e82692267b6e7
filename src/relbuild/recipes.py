"""The fixed dependency set and release program for the aria2 macOS build.

Checksums are not recorded here: ``relbuild lock`` pins every archive in
``sources.lock.json`` and builds verify against those pins.
"""

from __future__ import annotations

from relbuild.models import Dependency, Program

ZLIB = Dependency(
    name="zlib",
    version="1.3.1",
    url="https://zlib.net/zlib-1.3.1.tar.gz",
    archive_root="zlib-1.3.1",
    confflags=(),
    per_arch=False,
    libraries=("libz.a",),
)

EXPAT = Dependency(
    name="expat",
    version="2.6.2",
    url="https://github.com/libexpat/libexpat/releases/download/R_2_6_2/expat-2.6.2.tar.bz2",
    archive_root="expat-2.6.2",
    confflags=("--without-docbook", "--without-examples", "--without-tests"),
    libraries=("libexpat.a",),
)

CARES = Dependency(
    name="cares",
    version="1.28.1",
    url="https://github.com/c-ares/c-ares/releases/download/cares-1_28_1/c-ares-1.28.1.tar.gz",
    archive_root="c-ares-1.28.1",
    confflags=("--disable-tests",),
    nocheck=True,
    libraries=("libcares.a",),
)

SQLITE = Dependency(
    name="sqlite",
    version="3.45.3",
    url="https://www.sqlite.org/2024/sqlite-autoconf-3450300.tar.gz",
    archive_root="sqlite-autoconf-3450300",
    confflags=("--disable-editline", "--disable-readline", "--disable-dynamic-extensions"),
    cflags="-DSQLITE_OMIT_LOAD_EXTENSION",
    nocheck=True,
    libraries=("libsqlite3.a",),
)

GMP = Dependency(
    name="gmp",
    version="6.3.0",
    url="https://gmplib.org/download/gmp/gmp-6.3.0.tar.xz",
    archive_root="gmp-6.3.0",
    confflags=("--host={host}", "--disable-cxx", "--enable-assembly=no"),
    libraries=("libgmp.a",),
)

LIBGPGERROR = Dependency(
    name="libgpgerror",
    version="1.49",
    url="https://gnupg.org/ftp/gcrypt/libgpg-error/libgpg-error-1.49.tar.bz2",
    archive_root="libgpg-error-1.49",
    confflags=("--host={host}", "--disable-nls", "--disable-doc", "--disable-tests"),
    libraries=("libgpg-error.a",),
)

LIBGCRYPT = Dependency(
    name="libgcrypt",
    version="1.10.3",
    url="https://gnupg.org/ftp/gcrypt/libgcrypt/libgcrypt-1.10.3.tar.bz2",
    archive_root="libgcrypt-1.10.3",
    confflags=(
        "--host={host}",
        "--with-gpg-error-prefix={prefix}",
        "--disable-asm",
        "--disable-doc",
    ),
    requires=("libgpgerror",),
    libraries=("libgcrypt.a",),
)

LIBSSH2 = Dependency(
    name="libssh2",
    version="1.11.0",
    url="https://libssh2.org/download/libssh2-1.11.0.tar.gz",
    archive_root="libssh2-1.11.0",
    confflags=(
        "--with-crypto=libgcrypt",
        "--with-libgcrypt-prefix={prefix}",
        "--without-openssl",
        "--disable-examples-build",
    ),
    nocheck=True,
    requires=("libgcrypt",),
    libraries=("libssh2.a",),
)

DEPENDENCIES: tuple[Dependency, ...] = (
    ZLIB,
    EXPAT,
    CARES,
    SQLITE,
    GMP,
    LIBGPGERROR,
    LIBGCRYPT,
    LIBSSH2,
)

ARIA2 = Program(
    name="aria2",
    binary="aria2c",
    confflags=(
        "--enable-static",
        "--disable-shared",
        "--disable-metalink",
        "--enable-bittorrent",
        "--disable-nls",
        "--with-appletls",
        "--with-libz",
        "--with-gmp",
        "--with-libgcrypt",
        "--with-libssh2",
        "--with-sqlite3",
        "--with-libexpat",
        "--with-libcares",
        "--without-libuv",
        "--without-gnutls",
        "--without-openssl",
        "--without-libnettle",
        "--without-libxml2",
        "ARIA2_STATIC=yes",
    ),
)
