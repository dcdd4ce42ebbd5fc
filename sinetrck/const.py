# id given to partials which have not been inserted into a Spectrum yet
UNSETID = -1

# lowest frequency an edit can produce
MINFREQ = 20.0

# harmonics above this frequency are not generated
MAXFREQ_HARMONICS = 20000.0

# floor applied to linear magnitudes before taking the log
MAGFLOOR = 1e-10
