"""
# xmfstruct: XMF files for humans.

A file format is a way of describing a binary representation of something
digital, where each subcomponent of the file format aims to represent a specific aspect
of the digital artefact.

Here the format is described declaratively: a Chunk is a class whose attributes are
the fields composing it, in order. Each field knows how many bytes it needs to read
and its size and content can depend on other fields, via Dependency.

The main operation is unpack(): reading the binary data and building a high-level
representation of it. Usually when unpacking you use as offset the actual offset of the
stream and the chunk itself knows how many bytes needs to read to finalize the
representation; some formats refer to data by absolute offset so the stream must allow
to jump back and forth.

An instance representing a file format can be in one of the following states

 1. INIT
 2. UNPACKING
 3. DONE

The formats implemented live in sub-packages, for now the eXtensible Music Format
(XMF and Mobile XMF) at xmfstruct.audio.xmf.
"""
